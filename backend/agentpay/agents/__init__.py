"""Role capabilities and the payment session orchestrator."""
