import pytest

from adapters.providers.minimax import MiniMaxProvider
from conftest import NOW_MS, json_response, status_response
from core.coercion import format_iso_ms
from core.config import AppSettings
from core.domain.errors import AuthError, DataUnavailableError, HttpError, NetworkError, ParseError, PluginSpecificError, TransportError
from core.domain.models import RealmSelection

PRIMARY = "https://api.minimax.io/v1/api/openplatform/coding_plan/remains"
FALLBACK = "https://api.minimax.io/v1/coding_plan/remains"
LEGACY_WWW = "https://www.minimax.io/v1/api/openplatform/coding_plan/remains"
CN_PRIMARY = "https://api.minimaxi.com/v1/api/openplatform/coding_plan/remains"
CN_FALLBACK = "https://api.minimaxi.com/v1/coding_plan/remains"


def success_payload(**overrides):
    payload = {
        "base_resp": {"status_code": 0},
        "plan_name": "Plus",
        "model_remains": [
            {
                "model_name": "MiniMax-M2",
                "current_interval_total_count": 300,
                "current_interval_usage_count": 180,
                "start_time": 1_700_000_000_000,
                "end_time": 1_700_018_000_000,
            }
        ],
    }
    payload.update(overrides)
    return payload


def cn_payload(total, remaining, **overrides):
    return success_payload(
        model_remains=[
            {
                "model_name": "MiniMax-M2",
                "current_interval_total_count": total,
                "current_interval_usage_count": remaining,
                "start_time": 1_700_000_000_000,
                "end_time": 1_700_018_000_000,
            }
        ],
        **overrides,
    )


def probe(host):
    return MiniMaxProvider().probe(host.context())


def test_missing_key(host):
    with pytest.raises(AuthError, match="MiniMax API key missing. Set MINIMAX_API_KEY or MINIMAX_CN_API_KEY."):
        probe(host)
    assert host.http.calls == []


def test_sends_bearer_key_to_primary_url(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(success_payload())

    probe(host)

    call = host.http.calls[0]
    assert call.url == PRIMARY
    assert call.headers["Authorization"] == "Bearer mini-key"
    assert call.headers["Content-Type"] == "application/json"
    assert call.headers["Accept"] == "application/json"


def test_falls_back_to_api_token(host):
    host.env.values.update({"MINIMAX_API_KEY": "", "MINIMAX_API_TOKEN": "token-fallback"})
    host.http.default = json_response(success_payload())

    probe(host)

    assert host.http.calls[0].headers["Authorization"] == "Bearer token-fallback"


def test_auto_prefers_cn_when_cn_key_exists(host):
    host.env.values.update({"MINIMAX_CN_API_KEY": "cn-key", "MINIMAX_API_KEY": "global-key"})
    host.http.default = json_response(success_payload())

    result = probe(host)

    assert host.http.calls[0].url == CN_PRIMARY
    assert host.http.calls[0].headers["Authorization"] == "Bearer cn-key"
    assert result.plan == "Plus (CN)"


def test_explicit_region_overrides_auto(host):
    host.env.values.update({"MINIMAX_CN_API_KEY": "cn-key", "MINIMAX_API_KEY": "global-key"})
    host.settings = AppSettings(_env_file=None, minimax_region=RealmSelection.GLOBAL)
    host.http.default = json_response(success_payload())

    result = probe(host)

    assert host.http.urls == [PRIMARY]
    assert result.plan == "Plus (GLOBAL)"


def test_falls_back_to_cn_when_global_auth_fails(host):
    host.env.values["MINIMAX_API_KEY"] = "global-key"
    for url in (PRIMARY, FALLBACK, LEGACY_WWW):
        host.http.route(url, status_response(401))
    host.http.route(CN_PRIMARY, json_response(cn_payload(1500, 1200)))

    result = probe(host)

    assert result.lines[0].used == 20
    assert result.plan == "Plus (CN)"
    assert host.http.urls[0] == PRIMARY
    assert host.http.urls[-1] == CN_PRIMARY


def test_first_realm_http_error_wins_over_later_auth(host):
    host.env.values["MINIMAX_API_KEY"] = "global-key"
    for url in (PRIMARY, FALLBACK, LEGACY_WWW):
        host.http.route(url, status_response(500, "{}"))
    for url in (CN_PRIMARY, CN_FALLBACK):
        host.http.route(url, status_response(401))

    with pytest.raises(HttpError, match=r"Request failed \(HTTP 500\)"):
        probe(host)


def test_first_realm_auth_error_wins_over_later_http(host):
    host.env.values["MINIMAX_API_KEY"] = "global-key"
    for url in (PRIMARY, FALLBACK, LEGACY_WWW):
        host.http.route(url, status_response(401))
    for url in (CN_PRIMARY, CN_FALLBACK):
        host.http.route(url, status_response(500, "{}"))

    with pytest.raises(AuthError, match="Session expired. Check your MiniMax API key."):
        probe(host)


def test_parses_usage_plan_reset_and_period(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(success_payload())

    result = probe(host)

    assert result.plan == "Plus (GLOBAL)"
    [line] = result.lines
    assert line.label == "Session"
    assert line.type == "progress"
    assert line.used == 120
    assert line.limit == 300
    assert line.format.kind == "count"
    assert line.format.suffix == "prompts"
    assert line.resets_at == "2023-11-15T03:13:20.000Z"
    assert line.period_duration_ms == 18_000_000


def test_usage_count_field_is_remaining(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "base_resp": {"status_code": 0},
            "model_remains": [
                {"current_interval_total_count": 1500, "current_interval_usage_count": 1500, "remains_time": 3_600_000}
            ],
        }
    )

    [line] = probe(host).lines

    assert (line.used, line.limit) == (0, 1500)


def test_infers_global_tier_from_model_call_total(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "base_resp": {"status_code": 0},
            "model_remains": [{"current_interval_total_count": 1500, "current_interval_usage_count": 1200}],
        }
    )

    result = probe(host)

    assert result.plan == "Starter (GLOBAL)"
    assert (result.lines[0].used, result.lines[0].limit) == (300, 1500)


def test_unknown_total_has_no_plan(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "base_resp": {"status_code": 0},
            "model_remains": [
                {"current_interval_total_count": 1337, "current_interval_usage_count": 1000, "model_name": "MiniMax-M2.5"}
            ],
        }
    )

    result = probe(host)

    assert result.plan is None
    assert result.lines[0].used == 337


def test_nested_payload_with_remains_time_in_seconds(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "data": {
                "base_resp": {"status_code": 0},
                "current_subscribe_title": "Max",
                "model_remains": [
                    {"current_interval_total_count": 100, "current_interval_usage_count": 40, "remains_time": 7200}
                ],
            }
        }
    )

    result = probe(host)
    [line] = result.lines

    assert result.plan == "Max (GLOBAL)"
    assert (line.used, line.limit) == (60, 100)
    assert line.resets_at == format_iso_ms(NOW_MS + 7200 * 1000)


def test_small_remains_time_read_as_milliseconds(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "data": {
                "base_resp": {"status_code": 0},
                "model_remains": [
                    {"current_interval_total_count": 100, "current_interval_usage_count": 55, "remains_time": 300_000}
                ],
            }
        }
    )

    [line] = probe(host).lines

    assert line.used == 45
    assert line.resets_at == format_iso_ms(NOW_MS + 300_000)


def test_remaining_count_variant_and_vendor_prefix(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "base_resp": {"status_code": 0},
            "plan_name": "MiniMax Coding Plan Pro",
            "model_remains": [
                {
                    "current_interval_total_count": 300,
                    "current_interval_remaining_count": 120,
                    "end_time": 1_700_018_000_000,
                }
            ],
        }
    )

    result = probe(host)

    assert result.plan == "Pro (GLOBAL)"
    assert (result.lines[0].used, result.lines[0].limit) == (180, 300)


def test_auth_status_on_every_url_tries_all_five(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = status_response(401)

    with pytest.raises(AuthError, match="Session expired"):
        probe(host)

    assert len(host.http.calls) == 5


def test_secondary_url_used_when_primary_fails(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.route(PRIMARY, status_response(503, "{}"))
    host.http.route(FALLBACK, json_response(success_payload()))

    result = probe(host)

    assert result.lines[0].used == 120
    assert len(host.http.calls) == 2


def test_cn_fallback_url(host):
    host.env.values["MINIMAX_CN_API_KEY"] = "cn-key"
    host.http.route(CN_PRIMARY, status_response(503, "{}"))
    host.http.route(CN_FALLBACK, json_response(cn_payload(1500, 1200)))

    result = probe(host)

    assert result.lines[0].used == 20
    assert host.http.urls == [CN_PRIMARY, CN_FALLBACK]


@pytest.mark.parametrize(
    "total, remaining, plan, limit, used",
    [
        (600, 500, "Starter (CN)", 40, 7),
        (1500, 1200, "Plus (CN)", 100, 20),
        (4500, 2700, "Max (CN)", 300, 120),
        (9000, 6000, None, 600, 200),
    ],
)
def test_cn_tiers_and_prompt_conversion(host, total, remaining, plan, limit, used):
    host.env.values["MINIMAX_CN_API_KEY"] = "cn-key"
    payload = cn_payload(total, remaining)
    del payload["plan_name"]
    host.http.default = json_response(payload)

    result = probe(host)

    assert result.plan == plan
    assert (result.lines[0].limit, result.lines[0].used) == (limit, used)


def test_embedded_auth_status(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {"base_resp": {"status_code": 1004, "status_msg": "cookie is missing, log in again"}}
    )

    with pytest.raises(AuthError, match="Session expired"):
        probe(host)


def test_embedded_status_without_message(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response({"base_resp": {"status_code": 429}})

    with pytest.raises(PluginSpecificError, match=r"MiniMax API error \(status 429\)"):
        probe(host)


def test_no_usable_usage_data(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response({"base_resp": {"status_code": 0}, "model_remains": []})

    with pytest.raises(DataUnavailableError, match="Could not parse usage data"):
        probe(host)


def test_env_getter_failure_falls_back_to_next_variable(host):
    host.env.values.update({"MINIMAX_API_KEY": RuntimeError("env unavailable"), "MINIMAX_API_TOKEN": "fallback-token"})
    host.http.default = json_response(success_payload())

    result = probe(host)

    assert result.lines[0].used == 120
    assert host.http.calls[0].headers["Authorization"] == "Bearer fallback-token"


def test_camel_case_payload_with_explicit_used(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "base_resp": {"status_code": 0},
            "modelRemains": [
                None,
                {"currentIntervalTotalCount": "500", "currentIntervalUsedCount": "123", "remainsTime": 7_200_000},
            ],
        }
    )

    [line] = probe(host).lines

    assert (line.used, line.limit) == (123, 500)
    assert line.resets_at == format_iso_ms(NOW_MS + 7_200_000)
    assert line.period_duration_ms is None


def test_all_urls_http_error(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = status_response(500, "{}")

    with pytest.raises(HttpError, match=r"Request failed \(HTTP 500\)"):
        probe(host)


def test_all_urls_network_error(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = TransportError("boom")

    with pytest.raises(NetworkError, match="Request failed. Check your connection."):
        probe(host)


def test_all_urls_invalid_json(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = status_response(200, "<html>")

    with pytest.raises(ParseError, match="Could not parse usage data."):
        probe(host)


def test_bare_coding_plan_title(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(success_payload(plan_name="MiniMax Coding Plan"))

    assert probe(host).plan == "Coding Plan (GLOBAL)"


def test_clamps_used_into_range(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "base_resp": {"status_code": 0},
            "model_remains": [{"current_interval_total_count": 100, "current_interval_used_count": 250}],
        }
    )

    assert probe(host).lines[0].used == 100


def test_epoch_seconds_timestamps(host):
    host.env.values["MINIMAX_API_KEY"] = "mini-key"
    host.http.default = json_response(
        {
            "base_resp": {"status_code": 0},
            "model_remains": [
                {
                    "current_interval_total_count": 100,
                    "current_interval_usage_count": 40,
                    "start_time": 1_700_000_000,
                    "end_time": 1_700_018_000,
                }
            ],
        }
    )

    [line] = probe(host).lines

    assert line.period_duration_ms == 18_000_000
    assert line.resets_at == "2023-11-15T03:13:20.000Z"
