"""Service layer: provider orchestration, transport and log guards."""
