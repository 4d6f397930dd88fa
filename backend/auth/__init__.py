"""
Authentication package for Portier.

Provides:
- JWT token creation and validation
- Current-user dependencies (Bearer header or auth cookie)
- Super-admin and site-admin guards for the settings API
"""
