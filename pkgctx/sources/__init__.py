"""Source acquisition: locators, registries, caching and resolution."""
