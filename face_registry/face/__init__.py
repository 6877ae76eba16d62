"""Face registry building blocks (store/matcher/extractor/service).

Nothing here is a process-wide singleton; callers construct and own the
store, matcher and service they use.
"""
