"""HTTP routers for reports and ledger corrections."""
