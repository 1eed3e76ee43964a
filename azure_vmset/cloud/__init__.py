"""Azure Resource Manager access, resource identifiers and orchestrator-side models."""
