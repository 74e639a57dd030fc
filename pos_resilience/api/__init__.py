"""HTTP API for the checkout orchestrator."""
