"""
Authentication service for CTPGA Manager.

This module provides authentication and authorization services:
- User registration, approval and login
- JWT token issuing, verification and refresh
- Role-based access control
"""
