"""Keep-list aggregation and linker descriptor emission."""
