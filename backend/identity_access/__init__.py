"""Identity context: principals, roles, suspension and admin elevation."""
