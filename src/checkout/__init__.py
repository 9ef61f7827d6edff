"""Payment intent dispatch, status polling and order reconciliation."""
