"""Identity and workspace access control for the gym tracker Mini App."""
