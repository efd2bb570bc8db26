"""Framework integrations for sqla-rowgate (installed via extras)."""
