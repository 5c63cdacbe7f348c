"""Intent-driven multi-source city search: classify, fan out, fuse, cache."""
