"""
Authentication service for the CRM.

This module provides authentication and authorization services:
- User registration and login
- JWT token handling
- Per-request authentication of bearer tokens
- Role-based access control
"""
