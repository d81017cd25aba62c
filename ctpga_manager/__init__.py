"""
CTPGA Manager API.

Activities, users and role-based access for instructors, admins and
superadmins.
"""
