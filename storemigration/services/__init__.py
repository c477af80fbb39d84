"""Services for storemigration."""
