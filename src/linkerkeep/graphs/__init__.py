"""Call-site discovery and backward type-origin resolution."""
