"""Tests for the command line entry points.

Covers the workflow from a generated JSON dataset through the metrics report
and the growth CSV export.
"""

import json
from decimal import Decimal

import pandas as pd
import pytest

from subscription_metrics.cli import (
    dataset_from_dict,
    dataset_to_dict,
    generate_data_cli,
    growth_cli,
    metrics_cli,
    sync_cli,
)

NOW = "2024-06-15T12:00:00+00:00"


@pytest.fixture
def dataset_json(tmp_path):
    """Generate a seeded dataset file."""
    path = tmp_path / "data" / "dataset.json"
    exit_code = generate_data_cli(
        [
            "--output",
            str(path),
            "--seed",
            "11",
            "--now",
            NOW,
            "--min-customers",
            "12",
            "--max-customers",
            "12",
        ]
    )
    assert exit_code == 0
    return path


class TestGenerateDataCli:
    def test_writes_dataset(self, dataset_json):
        payload = json.loads(dataset_json.read_text())

        assert [p["name"] for p in payload["products"]] == ["Free", "Plus", "Pro"]
        assert len(payload["customers"]) == 12
        assert payload["subscriptions"][0]["subscription_id"] == "S-1"
        assert isinstance(payload["subscriptions"][0]["amount"], str)

    def test_stdout_output(self, capsys):
        generate_data_cli(["--seed", "1", "--now", NOW, "--max-customers", "10"])
        payload = json.loads(capsys.readouterr().out)
        assert len(payload["customers"]) == 10

    def test_payload_reloads(self, dataset_json):
        payload = json.loads(dataset_json.read_text())
        dataset = dataset_from_dict(payload)
        assert dataset_to_dict(dataset) == payload
        assert all(s.product is not None for s in dataset.subscriptions)


class TestMetricsCli:
    """Revenue, churn and retention report."""

    def test_prints_report(self, dataset_json, capsys):
        exit_code = metrics_cli([str(dataset_json), "--now", NOW])

        assert exit_code == 0
        report = json.loads(capsys.readouterr().out)
        assert set(report) == {"churn", "retention", "revenue"}
        assert report["revenue"]["arr"] == pytest.approx(report["revenue"]["mrr"] * 12)
        assert 0 <= report["churn"]["churn_rate"] <= 100
        assert [p["name"] for p in report["revenue"]["by_product"]]

    def test_custom_lifetime(self, dataset_json, capsys):
        metrics_cli([str(dataset_json), "--now", NOW, "--lifetime-months", "24"])
        report = json.loads(capsys.readouterr().out)
        # twelve customers, so LTV = MRR / 12 * 24
        assert report["revenue"]["ltv"] == pytest.approx(report["revenue"]["mrr"] * 2, abs=0.01)

    def test_empty_dataset_fails(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text(json.dumps({"products": [], "customers": [], "subscriptions": []}))
        assert metrics_cli([str(path), "--now", NOW]) == 1

    def test_rejects_non_object_payload(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]")
        with pytest.raises(ValueError, match="Expected an object"):
            metrics_cli([str(path)])


class TestGrowthCli:
    def test_exports_csv(self, dataset_json, tmp_path):
        output = tmp_path / "out" / "growth.csv"

        exit_code = growth_cli([str(dataset_json), "--output", str(output)])

        assert exit_code == 0
        growth = pd.read_csv(output)
        assert list(growth.columns) == [
            "period",
            "new_subscriptions",
            "canceled_subscriptions",
            "net_growth",
            "total_subscriptions",
        ]
        assert growth["new_subscriptions"].sum() >= 12
        assert growth["total_subscriptions"].iloc[-1] == growth["net_growth"].sum()


class TestSyncCli:
    def test_mirrors_export_into_dataset(self, tmp_path):
        export = tmp_path / "export.json"
        export.write_text(
            json.dumps(
                {
                    "customers": [{"id": "cus_a", "email": "a@example.com", "name": "A"}],
                    "subscriptions": [
                        {
                            "id": "sub_1",
                            "customer": "cus_a",
                            "status": "active",
                            "start_date": 1704067200,
                            "items": {
                                "data": [
                                    {
                                        "price": {
                                            "unit_amount": 2000,
                                            "product": {"id": "prod_plus", "name": "Plus"},
                                        }
                                    }
                                ]
                            },
                        },
                        {"id": "sub_2", "customer": "cus_gone", "status": "active", "start_date": 1704067200},
                    ],
                }
            )
        )
        output = tmp_path / "synced.json"

        exit_code = sync_cli([str(export), "--output", str(output)])

        assert exit_code == 0
        dataset = dataset_from_dict(json.loads(output.read_text()))
        assert [c.external_id for c in dataset.customers] == ["cus_a"]
        assert [(p.external_id, p.name, p.price) for p in dataset.products] == [
            ("prod_plus", "Plus", Decimal("20"))
        ]
        (subscription,) = dataset.subscriptions
        assert subscription.external_id == "sub_1"
        assert subscription.amount == Decimal("20")
        assert subscription.customer_id == dataset.customers[0].customer_id

    def test_rejects_non_object_export(self, tmp_path):
        path = tmp_path / "export.json"
        path.write_text("[]")
        with pytest.raises(ValueError, match="Expected an object"):
            sync_cli([str(path)])
