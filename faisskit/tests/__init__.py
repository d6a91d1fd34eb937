"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Result monad and error taxonomy
    - Core types (MetricType, SearchResult, RangeSearchResult)
    - Factory descriptions and index operations
    - Persistence, id selectors, GPU residency, clustering
    - Configuration and CLI
"""
