"""
Citizen administration: platform role changes and bans (admin-only, audited).
"""
