"""HTTP adapter for payroll execution."""
