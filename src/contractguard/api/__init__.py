"""HTTP API for ContractGuard."""
