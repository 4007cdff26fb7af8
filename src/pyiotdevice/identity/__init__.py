"""Device identity persistence and provisioning."""
