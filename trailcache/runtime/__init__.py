"""Runtime components: the cache core and its remote I/O."""
