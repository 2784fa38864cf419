# Reasons attached to each recommendation, shown to shoppers
REASON_CO_OCCURRENCE = "Frequently bought together"
REASON_SIMILAR = "Similar product"
REASON_SIMILAR_TO_VIEWS = "Similar to products you viewed"
REASON_TRENDING = "Trending now"
REASON_CATEGORY_AFFINITY = "From categories you shop"
REASON_SIMILAR_USERS = "Customers with similar taste bought this"
REASON_PERSONALIZED = "Picked for you"
REASON_BLENDED = "Recommended by {n} strategies"

# Confidence of a category-affinity match
CATEGORY_AFFINITY_CONFIDENCE = 0.8

# Context id for tenant-wide results (no user, no product)
TENANT_WIDE = "-"

# Candidate over-fetch factor, so eligibility filtering rarely leaves fewer than `limit`
OVERFETCH = 2
