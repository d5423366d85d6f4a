# tests/test_data_processing.py

"""
Test cases for the Training Data Assembler and vulnerability normalisation
Run: pytest tests/test_data_processing.py -v
"""

import logging

import pytest

from conftest import make_attack
from ml.data_processing import (
    normalize_vulnerabilities,
    parse_json_list,
    prepare_training_data,
    summarize_training_data,
)
from ml.database import ThreatActor, Vulnerability


class TestParseJsonList:

    @pytest.mark.parametrize("raw,expected", [
        (None, []),
        ("", []),
        ('["CVE-1", "CVE-2"]', ["CVE-1", "CVE-2"]),
        (["CVE-1"], ["CVE-1"]),
        ("{not json", []),
        ('{"a": 1}', []),
    ])
    def test_values(self, raw, expected):
        assert parse_json_list(raw) == expected

    def test_malformed_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING):
            parse_json_list("[oops", context="for attack x")
        assert "Malformed JSON" in caplog.text


class TestPrepareTrainingData:

    def test_empty_store(self, store):
        assert prepare_training_data(store) == []

    def test_store_order_and_count(self, seeded_store):
        """Test: one example per attack, newest first"""
        examples = prepare_training_data(seeded_store)
        assert len(examples) == 36
        assert examples[0].id == "atk-035"
        assert examples[-1].id == "atk-000"

    def test_vulnerability_join(self, store):
        """Test: avg severity over resolved CVEs, count over the raw list"""
        store.add_all([
            Vulnerability(id="CVE-A", severity=9.0),
            Vulnerability(id="CVE-B", severity=5.0),
            make_attack("a1", 0, exploited=["CVE-A", "CVE-B", "CVE-MISSING"]),
            make_attack("a2", 1, exploited=[]),
        ])
        by_id = {e.id: e for e in prepare_training_data(store)}
        assert by_id["a1"].avg_vuln_severity == pytest.approx(7.0)
        assert by_id["a1"].exploited_vuln_count == 3
        assert by_id["a2"].avg_vuln_severity == 0.0
        assert by_id["a2"].exploited_vuln_count == 0

    def test_malformed_exploited_json_does_not_abort(self, store, caplog):
        """Test: a corrupt vulnerabilities_exploited value is treated as []"""
        store.add_all([
            make_attack("good", 0, exploited=["CVE-X"]),
            make_attack("bad", 1, exploited="[CVE-X,"),
        ])
        with caplog.at_level(logging.WARNING):
            examples = prepare_training_data(store)
        by_id = {e.id: e for e in examples}
        assert len(examples) == 2
        assert by_id["bad"].exploited_vuln_count == 0
        assert "bad" in caplog.text

    def test_actor_join_and_dangling_reference(self, store):
        store.add_all([
            ThreatActor(id="apt", name="APT", nation_state="Iran", sophistication_level="high"),
            make_attack("with-actor", 0, actor_id="apt"),
            make_attack("dangling", 1, actor_id="ghost"),
            make_attack("no-actor", 2),
        ])
        by_id = {e.id: e for e in prepare_training_data(store)}
        assert by_id["with-actor"].nation_state == "Iran"
        assert by_id["with-actor"].threat_actor_sophistication == "high"
        assert by_id["dangling"].nation_state is None
        assert by_id["dangling"].threat_actor_sophistication == "unknown"
        assert by_id["no-actor"].threat_actor_sophistication == "unknown"

    def test_day_features(self, store):
        """Test: first-attack days are dataset-relative, last-attack days per sector"""
        store.add_all([
            make_attack("h1", 0,  sector="Healthcare"),
            make_attack("f1", 4,  sector="Financial"),
            make_attack("h2", 10, sector="healthcare"),
            make_attack("h3", 15, sector="Healthcare"),
        ])
        by_id = {e.id: e for e in prepare_training_data(store)}

        assert by_id["h1"].days_since_first_attack == pytest.approx(0.0)
        assert by_id["f1"].days_since_first_attack == pytest.approx(4.0)
        assert by_id["h3"].days_since_first_attack == pytest.approx(15.0)

        assert by_id["h1"].days_since_last_attack == 0.0
        assert by_id["h2"].days_since_last_attack == pytest.approx(10.0)
        assert by_id["h3"].days_since_last_attack == pytest.approx(5.0)
        assert by_id["f1"].days_since_last_attack == 0.0

        assert by_id["h1"].historical_attack_frequency == 0
        assert by_id["h3"].historical_attack_frequency == 2
        assert by_id["f1"].historical_attack_frequency == 0

    def test_summary(self, seeded_store):
        summary = summarize_training_data(prepare_training_data(seeded_store))
        assert summary["count"].sum() == 36
        assert summary.loc["ransomware", "count"] == 6
        assert summary["pct"].sum() == pytest.approx(100.0, abs=0.5)


class TestNormalizeVulnerabilities:

    NVD_ITEMS = [
        {
            "cve": {
                "id": "CVE-2024-1111",
                "published": "2024-02-01T10:00:00.000",
                "descriptions": [{"lang": "en", "value": "Remote code execution"}],
                "metrics": {
                    "cvssMetricV31": [{
                        "impactScore": 5.9,
                        "cvssData": {
                            "baseScore": 9.8, "attackVector": "NETWORK",
                            "attackComplexity": "LOW", "privilegesRequired": "NONE",
                            "userInteraction": "NONE",
                        },
                    }],
                },
                "configurations": [{"nodes": [{"cpeMatch": [
                    {"criteria": "cpe:2.3:a:acme:widget:1.0:*:*:*:*:*:*:*"},
                    {"criteria": "cpe:2.3:a:acme:widget:1.1:*:*:*:*:*:*:*"},
                ]}]}],
            }
        },
        {
            "cve": {
                "id": "CVE-2024-2222",
                "metrics": {"cvssMetricV2": [{
                    "impactScore": 2.9, "userInteractionRequired": True,
                    "cvssData": {"baseScore": 4.3, "accessVector": "NETWORK",
                                 "accessComplexity": "MEDIUM"},
                }]},
            }
        },
        {"cve": {}},
    ]

    KEV = {"vulnerabilities": [{
        "cveID": "CVE-2024-2222", "vendorProject": "Contoso", "product": "Portal",
        "dateAdded": "2024-03-01", "dueDate": "2024-03-22",
    }]}

    def test_v31_preferred(self):
        result = normalize_vulnerabilities(self.NVD_ITEMS, self.KEV)
        assert [v.cve_id for v in result] == ["CVE-2024-1111", "CVE-2024-2222"]
        first = result[0]
        assert first.cvss_score == 9.8
        assert first.attack_vector == "NETWORK"
        assert first.vendor_name == "acme"
        assert first.product_name == "widget"
        assert first.affected_systems_count == 2
        assert first.exploited_in_wild is False
        assert first.description == "Remote code execution"

    def test_v2_fallback_and_kev(self):
        second = normalize_vulnerabilities(self.NVD_ITEMS, self.KEV)[1]
        assert second.cvss_score == 4.3
        assert second.user_interaction == "REQUIRED"
        assert second.exploited_in_wild is True
        assert second.vendor_name == "Contoso"
        assert second.days_to_remediate == pytest.approx(21.0)
