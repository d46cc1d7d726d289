"""Tests for the query tools the assistant can call.

Runs each tool implementation against the shared three-customer store:
alice (Free then Plus), bob (canceled Pro) and carol (trialing Plus).
"""

import json

import pytest

from analytics.services.assistant_server.queries import (
    ChurnRateRequest,
    CountCustomersRequest,
    CustomerSampleRequest,
    FindCustomerByEmailRequest,
    PlanChangesRequest,
    ProductStatsRequest,
    RevenueMetricsRequest,
    SubscriptionGrowthRequest,
    analyze_plan_changes_impl,
    calculate_churn_rate_impl,
    count_customers_impl,
    find_customer_by_email_impl,
    get_customer_sample_impl,
    get_product_stats_impl,
    get_revenue_metrics_impl,
    get_subscription_growth_impl,
)
from analytics.services.assistant_server.queries.customers import NO_EMAIL_MATCH_MESSAGE
from analytics.services.assistant_server.registry import build_default_registry


def test_count_all_customers(store, now):
    """All customers are counted by default."""
    assert count_customers_impl(CountCustomersRequest(), store, now) == {"count": 3}


def test_count_customers_with_active_subscriptions(store, now):
    """Trialing counts as active; bob's canceled Pro does not."""
    request = CountCustomersRequest.model_validate({"filter": "with active subscriptions"})

    result = count_customers_impl(request, store, now)

    assert result == {"activeCustomers": 2, "totalCustomers": 3}


def test_product_stats(store, now):
    """Every product is listed with counts, MRR and totals."""
    result = get_product_stats_impl(ProductStatsRequest(), store, now)

    rows = {row["name"]: row for row in result["products"]}
    assert rows["Plus"]["totalSubscriptions"] == 2
    assert rows["Plus"]["activeSubscriptions"] == 2
    assert rows["Plus"]["mrr"] == 40.0
    assert rows["Pro"]["activeSubscriptions"] == 0
    assert result["totals"] == {
        "products": 3,
        "totalSubscriptions": 4,
        "activeSubscriptions": 3,
        "mrr": 40.0,
    }


def test_customer_sample_is_capped(store, now):
    """The sample never exceeds the configured cap."""
    request = CustomerSampleRequest(count=50)

    assert len(get_customer_sample_impl(request, store, now)["customers"]) == 3
    assert len(get_customer_sample_impl(request, store, now, max_count=2)["customers"]) == 2


def test_customer_sample_details(store, now):
    """Totals paid are amount x months billed over all subscriptions."""
    result = get_customer_sample_impl(CustomerSampleRequest(), store, now)

    by_email = {c["email"]: c for c in result["customers"]}
    assert by_email["alice@example.com"]["totalPaid"] == 60.0
    assert by_email["alice@example.com"]["products"] == ["Free", "Plus"]
    assert by_email["bob@example.com"]["totalPaid"] == 800.0
    assert by_email["carol@another.org"]["subscriptionCount"] == 1


def test_customer_sample_filters_apply_to_one_subscription(store, now):
    """Product and status must match on the same subscription."""
    plus = CustomerSampleRequest.model_validate({"productFilter": "Plus"})
    canceled_plus = CustomerSampleRequest.model_validate(
        {"productFilter": "Plus", "statusFilter": "canceled"}
    )
    canceled_pro = CustomerSampleRequest(product_filter="Pro", status_filter="canceled")

    assert [c["id"] for c in get_customer_sample_impl(plus, store, now)["customers"]] == [
        "C-1",
        "C-3",
    ]
    assert get_customer_sample_impl(canceled_plus, store, now) == {"customers": []}
    assert [
        c["id"] for c in get_customer_sample_impl(canceled_pro, store, now)["customers"]
    ] == ["C-2"]


def test_find_customer_by_email_case_insensitive(store, now):
    """Partial, case-insensitive match returns the full profile."""
    result = find_customer_by_email_impl(FindCustomerByEmailRequest(email="ALICE"), store, now)

    (alice,) = result["customers"]
    assert alice["currentPlan"] == "Plus"
    assert alice["monthlyValue"] == 20.0
    assert alice["isActive"] is True
    assert [h["product"] for h in alice["subscriptionHistory"]] == ["Free", "Plus"]
    assert alice["subscriptionHistory"][0]["startDate"] == "2024-01-10T00:00:00+00:00"


def test_find_customer_by_email_inactive(store, now):
    """A customer without active subscriptions has no current plan."""
    result = find_customer_by_email_impl(FindCustomerByEmailRequest(email="bob@"), store, now)

    (bob,) = result["customers"]
    assert bob["currentPlan"] == "None"
    assert bob["isActive"] is False
    assert bob["monthlyValue"] == 0.0
    assert bob["subscriptionHistory"][0]["canceledAt"] == "2024-05-20T00:00:00+00:00"


def test_find_customer_by_email_no_match(store, now):
    """No match is reported as a message, not an error."""
    result = find_customer_by_email_impl(
        FindCustomerByEmailRequest(email="nobody"), store, now
    )
    assert result == {"message": NO_EMAIL_MATCH_MESSAGE}


@pytest.mark.parametrize(
    "arguments, expected",
    [
        ({}, (4, 1, 25.0)),
        ({"product": "Pro"}, (1, 1, 100.0)),
        ({"product": "Plus"}, (2, 0, 0.0)),
        ({"timePeriod": "last 3 months"}, (1, 0, 0.0)),
        ({"timePeriod": "last month"}, (0, 0, 0.0)),
    ],
)
def test_churn_rate(store, now, arguments, expected):
    """Churn is computed over subscriptions started within the period."""
    result = calculate_churn_rate_impl(ChurnRateRequest.model_validate(arguments), store, now)

    assert (
        result["totalSubscriptions"],
        result["canceledSubscriptions"],
        result["churnRate"],
    ) == expected


def test_churn_rate_labels(store, now):
    result = calculate_churn_rate_impl(ChurnRateRequest(), store, now)
    assert result["timePeriod"] == "all time"
    assert result["product"] == "all products"


def test_revenue_metrics_all(store, now):
    """LTV divides MRR by all customers, not just active ones."""
    result = get_revenue_metrics_impl(RevenueMetricsRequest(), store, now)

    assert result == {
        "mrr": 40.0,
        "arr": 480.0,
        "ltv": 160.0,
        "activeCustomerCount": 3,
        "avgRevenuePerCustomer": 13.33,
    }


def test_revenue_metrics_single_metric(store, now):
    ltv = get_revenue_metrics_impl(
        RevenueMetricsRequest.model_validate({"metric": "ltv", "byProduct": True}), store, now
    )
    mrr = get_revenue_metrics_impl(
        RevenueMetricsRequest.model_validate({"metric": "mrr", "byProduct": True}), store, now
    )

    assert ltv == {"ltv": 160.0}
    assert mrr["mrr"] == 40.0
    assert [p["name"] for p in mrr["byProduct"]] == ["Plus", "Free"]
    assert mrr["byProduct"][0]["percentOfMrr"] == 100.0
    assert mrr["byProduct"][0]["customerCount"] == 2


def test_revenue_metrics_lifetime_override(store, now):
    result = get_revenue_metrics_impl(
        RevenueMetricsRequest(metric="ltv"), store, now, assumed_lifetime_months=24
    )
    assert result == {"ltv": 320.0}


def test_subscription_growth_monthly(store, now):
    """Buckets with events only, with a running total."""
    result = get_subscription_growth_impl(SubscriptionGrowthRequest(), store, now)

    assert [
        (p["period"], p["newSubscriptions"], p["canceledSubscriptions"], p["totalSubscriptions"])
        for p in result["growthByPeriod"]
    ] == [
        ("2024-01", 1, 0, 1),
        ("2024-02", 1, 0, 2),
        ("2024-03", 1, 0, 3),
        ("2024-05", 1, 1, 3),
    ]
    assert result["timeGranularity"] == "monthly"


def test_subscription_growth_last_month(store, now):
    """Only bob's cancellation falls inside the last month."""
    request = SubscriptionGrowthRequest.model_validate({"timePeriod": "last month"})

    result = get_subscription_growth_impl(request, store, now)

    assert result["growthByPeriod"] == [
        {
            "period": "2024-05",
            "newSubscriptions": 0,
            "canceledSubscriptions": 1,
            "netGrowth": -1,
            "totalSubscriptions": -1,
        }
    ]


def test_plan_changes(store, now):
    """alice moved from Free to Plus."""
    result = analyze_plan_changes_impl(PlanChangesRequest(), store, now)

    assert result["summary"] == {
        "totalUpgrades": 1,
        "totalDowngrades": 0,
        "upgradeDowngradeRatio": 0.0,
    }
    assert result["upgrades"]["paths"] == {"Free → Plus": 1}
    (example,) = result["upgrades"]["recentExamples"]
    assert example["email"] == "alice@example.com"
    assert example["priceDifference"] == 20.0
    assert result["downgrades"]["count"] == 0


def test_plan_changes_single_direction(store, now):
    request = PlanChangesRequest.model_validate({"changeType": "downgrades"})

    result = analyze_plan_changes_impl(request, store, now)

    assert "upgrades" not in result
    assert result["downgrades"]["recentExamples"] == []


def test_queries_do_not_modify_store(store, now):
    """Read-only tools return identical results when repeated."""
    request = RevenueMetricsRequest(by_product=True)
    first = get_revenue_metrics_impl(request, store, now)
    second = get_revenue_metrics_impl(request, store, now)
    assert first == second


@pytest.mark.parametrize(
    ("tool_name", "arguments"),
    [
        ("getProductStats", {}),
        ("getRevenueMetrics", {}),
        ("getRevenueMetrics", {"metric": "all", "byProduct": True}),
    ],
)
def test_repeated_calls_serialize_identically(store, now, tool_name, arguments):
    """Repeated calls against an unchanged store give byte-identical JSON."""
    registry = build_default_registry(store, clock=lambda: now)

    first = json.dumps(registry.invoke(tool_name, arguments)).encode()
    second = json.dumps(registry.invoke(tool_name, arguments)).encode()

    assert "error" not in json.loads(first)
    assert first == second
