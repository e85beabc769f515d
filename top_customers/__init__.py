"""Top customers: revenue quantiles and idempotent export of the top bucket.

The pipeline resolves the current price and contact value of every key,
aggregates purchase events into revenue per customer, splits the ranked
customers into equal-sized quantile buckets and upserts the top bucket into
a reporting table.
"""

__version__ = "0.1.0"
