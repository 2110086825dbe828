"""Multi-level approval workflow engine for payroll, expenses, invoices and onboarding."""

__version__ = "0.1.0"
