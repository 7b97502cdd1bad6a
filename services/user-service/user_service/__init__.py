"""User account service: creation with role profiles and credential rotation."""
