"""
API routes, mounted under /api/v1.

- players: roster listing, injuries, absences and guests
- matches: lineup, substitution rounds, extra substitutions, finalize, score
- voting: votes, podium, payouts and credit balances
"""
