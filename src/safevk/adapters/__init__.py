"""VK-specific adapters implementing the core ports."""
