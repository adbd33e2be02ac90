"""informer-cache is a client side cache of kubernetes objects.

The cache keeps one informer per kind that lists and watches the API server
and serves reads from memory. Caches are created from `options.Options` by
`builder.new_cache`, and option sets may be layered with
`options.Options.inherit_from` or `builder.builder_with_options`.
"""

__all__ = [
    "builder",
    "cache",
    "config",
    "exceptions",
    "fields",
    "informer",
    "labels",
    "options",
    "resource",
    "scheme",
]
