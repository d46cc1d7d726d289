"""Query tools the language model can call.

Each tool is a pydantic request model (camelCase on the wire) plus a plain
``*_impl(request, store, now)`` function returning a JSON-safe dict.
"""

from analytics.services.assistant_server.queries.churn import (
    ChurnRateRequest,
    calculate_churn_rate_impl,
)
from analytics.services.assistant_server.queries.customers import (
    CountCustomersRequest,
    CustomerFilter,
    CustomerSampleRequest,
    FindCustomerByEmailRequest,
    count_customers_impl,
    find_customer_by_email_impl,
    get_customer_sample_impl,
)
from analytics.services.assistant_server.queries.growth import (
    SubscriptionGrowthRequest,
    get_subscription_growth_impl,
)
from analytics.services.assistant_server.queries.plan_changes import (
    PlanChangesRequest,
    analyze_plan_changes_impl,
)
from analytics.services.assistant_server.queries.products import (
    ProductStatsRequest,
    get_product_stats_impl,
)
from analytics.services.assistant_server.queries.revenue import (
    RevenueMetric,
    RevenueMetricsRequest,
    get_revenue_metrics_impl,
)

__all__ = [
    "ChurnRateRequest",
    "CountCustomersRequest",
    "CustomerFilter",
    "CustomerSampleRequest",
    "FindCustomerByEmailRequest",
    "PlanChangesRequest",
    "ProductStatsRequest",
    "RevenueMetric",
    "RevenueMetricsRequest",
    "SubscriptionGrowthRequest",
    "analyze_plan_changes_impl",
    "calculate_churn_rate_impl",
    "count_customers_impl",
    "find_customer_by_email_impl",
    "get_customer_sample_impl",
    "get_product_stats_impl",
    "get_revenue_metrics_impl",
    "get_subscription_growth_impl",
]
