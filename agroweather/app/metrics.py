from prometheus_client import Counter

provider_fetches = Counter(
    "provider_fetches_total", "Total provider fetches attempted.", ["domain"]
)
provider_failures = Counter(
    "provider_failures_total", "Total provider fetches that failed.", ["domain"]
)
cache_hits = Counter("provider_cache_hits_total", "Provider results served from cache.", ["domain"])
stale_refreshes = Counter(
    "stale_refreshes_total", "Snapshot refreshes discarded because a newer refresh started."
)
alerts_emitted = Counter("alerts_emitted_total", "Total alerts emitted.", ["priority"])
