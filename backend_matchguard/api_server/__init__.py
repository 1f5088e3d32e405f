"""
API server package: HTTP interface over validation and commitments.

Exposes match validation, player profiles, fairness ratings, and the
commitment store (commit, verify, report, chain callbacks) to clients.
"""
