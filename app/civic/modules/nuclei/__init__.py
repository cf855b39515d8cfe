"""
Nuclei (local chapters).

- Any authenticated, non-banned profile can open a nucleus and becomes its admin.
- Platform admins create, edit and delete nuclei from the back-office (audited).
- Join/leave are self-service and not audited; kicking a member is.
- Member counts are aggregated from nucleus_members at read time.
"""
