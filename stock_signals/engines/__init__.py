"""Pipeline engines: data model, calculators, provider, fetcher, aggregator, scheduler.

Kept import-free; use the submodules (or the lazy exports on the top-level
package) directly.
"""
