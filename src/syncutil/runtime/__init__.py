"""Runtime: cancellation scopes, bundles, invariant mutexes and logging."""
