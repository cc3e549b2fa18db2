"""Kernel services: period guard, journal ledger, inventory valuation, coordinator."""
