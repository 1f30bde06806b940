"""分段计费 API 测试"""

import json
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from main import create_app
from tier_pricing.config_models import AppConfig
from tier_pricing.exceptions import BasePricingException, ErrorCode
from tier_pricing.middleware.exception_middleware import status_code_for
from tier_pricing.settings_store import TierPricingSettingsStore

MODEL_CONFIGS = {
    "gpt": {
        "enabled": True,
        "models": "gpt-4o,gpt-4*",
        "priority": 1,
        "rules": [
            {"name": "short", "max_input_tokens": 32000, "input_ratio": 0.4, "completion_ratio": 1.5},
            {"name": "long", "min_input_tokens": 32001, "input_price": 1.0, "output_price": 3.0},
        ],
    }
}


@pytest.fixture
def client(tmp_path):
    config = AppConfig.model_validate(
        {
            "pricing": {
                "group_ratio": {"default": 1.0, "vip": 2.0},
                "settings_file": str(tmp_path / "tier.json"),
            },
            "logging": {"level": "WARNING", "log_file": None},
        }
    )
    store = TierPricingSettingsStore(config.pricing.settings_file)
    app = create_app(config, store)
    with TestClient(app) as test_client:
        yield test_client


def enable(client):
    assert client.put(
        "/api/option",
        json={"key": "token_tier_pricing.model_configs", "value": json.dumps(MODEL_CONFIGS)},
    ).status_code == 200
    assert client.put(
        "/api/option", json={"key": "token_tier_pricing.global_enabled", "value": "true"}
    ).status_code == 200


class TestHealth:
    """健康检查"""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["quota_per_unit"] == 500000

    def test_request_id_header(self, client):
        response = client.get("/api/tier-pricing", headers={"X-Request-ID": "abc"})
        assert response.headers["X-Request-ID"] == "abc"


class TestSettingsApi:
    """设置接口"""

    def test_initial_config(self, client):
        assert client.get("/api/tier-pricing").json() == {
            "global_enabled": False,
            "model_configs": {},
        }

    def test_update_options(self, client):
        enable(client)
        data = client.get("/api/tier-pricing").json()
        assert data["global_enabled"] is True
        assert data["model_configs"]["gpt"]["rules"][1]["input_price"] == 1.0

    def test_invalid_option_value(self, client):
        response = client.put(
            "/api/option",
            json={"key": "token_tier_pricing.model_configs", "value": "{broken"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "E1103"

    def test_unknown_option_key(self, client):
        response = client.put("/api/option", json={"key": "nope", "value": 1})
        assert response.status_code == 400

    def test_default_rules(self, client):
        rules = client.get("/api/tier-pricing/default-rules").json()["rules"]
        assert [r["name"][:2] for r in rules] == ["T1", "T2", "T3", "T4"]

    def test_create_copy_delete(self, client):
        response = client.post(
            "/api/tier-pricing/configs", json={"name": "new", "models": "claude-*"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["priority"] == 1

        copied = client.post("/api/tier-pricing/configs/new/copy", json={})
        assert copied.json()["name"] == "new_copy"
        assert copied.json()["data"]["priority"] == 2

        duplicate = client.post(
            "/api/tier-pricing/configs", json={"name": "new", "models": "x"}
        )
        assert duplicate.status_code == 409

        assert client.delete("/api/tier-pricing/configs/new").status_code == 200
        assert client.delete("/api/tier-pricing/configs/new").status_code == 404
        assert set(client.get("/api/tier-pricing").json()["model_configs"]) == {"new_copy"}

    def test_create_requires_models(self, client):
        response = client.post("/api/tier-pricing/configs", json={"name": "x"})
        assert response.status_code == 422
        assert client.get("/api/tier-pricing").json()["model_configs"] == {}


class TestPricingApi:
    """价格解析接口"""

    def test_resolve_tier(self, client):
        enable(client)
        data = client.post(
            "/api/tier-pricing/resolve",
            json={"model_name": "gpt-4o", "input_tokens": 1000, "output_tokens": 10},
        ).json()
        assert data["applies"] is True
        assert data["source"] == "tier"
        assert data["rule_name"] == "short"
        assert data["formatted"]["input_price"] == "$0.8000"
        assert data["formatted"]["output_price"] == "$1.2000"

    def test_resolve_group_and_unit(self, client):
        enable(client)
        data = client.post(
            "/api/tier-pricing/resolve",
            json={"model_name": "gpt-4o", "group": "vip", "input_tokens": 50000, "token_unit": "K"},
        ).json()
        assert data["rule_name"] == "long"
        assert data["input_price"] == pytest.approx(0.002)
        assert data["output_price"] == pytest.approx(0.006)

    def test_resolve_flat_fallback(self, client):
        data = client.post(
            "/api/tier-pricing/resolve",
            json={
                "model_name": "claude-3",
                "model_record": {"model_name": "claude-3", "model_ratio": 1.5, "completion_ratio": 5},
            },
        ).json()
        assert data["applies"] is True
        assert data["source"] == "flat"
        assert data["input_price"] == pytest.approx(3.0)
        assert data["output_price"] == pytest.approx(15.0)

    def test_resolve_nothing_applies(self, client):
        data = client.post("/api/tier-pricing/resolve", json={"model_name": "claude-3"}).json()
        assert data["applies"] is False

    def test_negative_tokens_rejected(self, client):
        response = client.post(
            "/api/tier-pricing/resolve", json={"model_name": "gpt-4o", "input_tokens": -1}
        )
        assert response.status_code == 422

    def test_model_tiers(self, client):
        enable(client)
        data = client.get("/api/tier-pricing/tiers/gpt-4o?token_unit=K").json()
        assert data["config_name"] == "gpt"
        assert [row["name"] for row in data["tiers"]] == ["short", "long"]
        assert data["tiers"][0]["input_price"] == "$0.0008"

    def test_model_tiers_slash_in_name(self, client):
        """网关风格的模型名（含 /）也能查询分段明细"""
        configs = {"openai": {**MODEL_CONFIGS["gpt"], "models": "openai/*"}}
        client.put(
            "/api/option",
            json={"key": "token_tier_pricing.model_configs", "value": configs},
        )
        client.put(
            "/api/option", json={"key": "token_tier_pricing.global_enabled", "value": True}
        )

        response = client.get("/api/tier-pricing/tiers/openai/gpt-4o")
        assert response.status_code == 200
        data = response.json()
        assert data["model_name"] == "openai/gpt-4o"
        assert data["config_name"] == "openai"
        assert len(data["tiers"]) == 2

    def test_model_tiers_missing(self, client):
        response = client.get("/api/tier-pricing/tiers/claude-3")
        assert response.status_code == 404

    def test_quota(self, client):
        enable(client)
        data = client.post(
            "/api/tier-pricing/quota",
            json={"model_name": "gpt-4o", "input_tokens": 1000, "output_tokens": 500},
        ).json()
        assert data["applies"] is True
        assert data["quota"] == 700
        assert data["use_ratio"] is True

    def test_quota_not_applicable(self, client):
        data = client.post(
            "/api/tier-pricing/quota", json={"model_name": "gpt-4o", "input_tokens": 10}
        ).json()
        assert data["applies"] is False
        assert data["quota"] is None


class TestErrorStatus:
    """错误码到 HTTP 状态码"""

    @pytest.mark.parametrize(
        "code, status",
        [
            (ErrorCode.CONFIG_INVALID, 400),
            (ErrorCode.MODEL_PATTERN_INVALID, 400),
            (ErrorCode.TIER_CONFIG_NOT_FOUND, 404),
            (ErrorCode.TIER_RULE_NOT_FOUND, 404),
            (ErrorCode.TIER_CONFIG_EXISTS, 409),
            (ErrorCode.CONFIG_SAVE_FAILED, 500),
        ],
    )
    def test_status_code_for(self, code, status):
        assert status_code_for(BasePricingException(code)) == status


if __name__ == "__main__":
    pytest.main([__file__])
