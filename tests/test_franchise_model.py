import io
import math
import zipfile
from copy import deepcopy

import pandas as pd
import pytest

from franchise_model import (
    BASIC_FEATURES, DEFAULT_INPUTS, REVENUE_FIELDS, apply_scenario_overrides, compare_scenarios, compute,
    cumulative_profit, export_all_to_zip, export_results_csv, find_breakeven_year, kpi_change,
    normalize_inputs, parse_dev_schedule, parse_tiered_royalty, project_charts, run_projection,
    scenario_comparison_table, simulate_years, summarize_kpis, tornado_sensitivity,
)


def zero_inputs(**overrides):
    """Every numeric driver at 0, no development schedule."""
    base = {k: 0 for k, v in DEFAULT_INPUTS.items() if not isinstance(v, (bool, str))}
    base.update({"dev_schedule": "", "min_royalty": False})
    base.update(overrides)
    return base


# -- Normalization --

def test_defaults_fill_every_field():
    p = normalize_inputs({})
    assert set(p) == set(DEFAULT_INPUTS)
    assert p["dev_schedule"] == [5, 10, 15, 20, 25]
    assert p["tiered_royalty_structure"] == {}
    assert p["min_royalty"] is False
    assert p["royalty_rate"] == 6.0


def test_camel_case_aliases_resolve():
    p = normalize_inputs({"initialFranchisees": 7, "royaltyRate": "8", "devSchedule": "1,2"})
    assert p["initial_franchisees"] == 7
    assert p["royalty_rate"] == 8.0
    assert p["dev_schedule"] == [1, 2]


def test_numeric_coercion():
    p = normalize_inputs({"churn_rate": None, "royalty_rate": "abc", "tech_fee": float("nan"),
                          "master_capex": "1,000", "initial_franchisees": "12.9", "marketing_levy": ""})
    assert p["churn_rate"] == DEFAULT_INPUTS["churn_rate"]
    assert p["royalty_rate"] == 0.0
    assert p["tech_fee"] == 0.0
    assert p["master_capex"] == 1000.0
    assert p["initial_franchisees"] == 12
    assert p["marketing_levy"] == DEFAULT_INPUTS["marketing_levy"]


def test_boolean_coercion():
    assert normalize_inputs({"min_royalty": "true"})["min_royalty"] is True
    assert normalize_inputs({"min_royalty": "no"})["min_royalty"] is False
    assert normalize_inputs({"min_royalty": 1})["min_royalty"] is True
    assert normalize_inputs({"min_royalty": None})["min_royalty"] is False
    assert normalize_inputs({"min_royalty": float("nan")})["min_royalty"] is False
    assert normalize_inputs({"minRoyalty": float("inf")})["min_royalty"] is False


def test_snake_case_key_wins_over_alias():
    for raw in ({"masterFranchiseFee": 1, "init_franchise_fee": 2}, {"init_franchise_fee": 2, "masterFranchiseFee": 1}):
        assert normalize_inputs(raw)["init_franchise_fee"] == 2.0
    assert normalize_inputs({"churnRate": 9, "churn_rate": None})["churn_rate"] == DEFAULT_INPUTS["churn_rate"]


def test_unknown_keys_dropped_and_input_untouched():
    raw = {"royalty_rate": "7", "nonsense": 3, "devSchedule": "4,5"}
    snapshot = deepcopy(raw)
    p = normalize_inputs(raw)
    assert "nonsense" not in p
    assert raw == snapshot


def test_parse_dev_schedule():
    assert parse_dev_schedule("5, 10,abc,,20") == [5, 10, 0, 0, 20]
    assert parse_dev_schedule("  ") == []
    assert parse_dev_schedule(None) == []
    assert parse_dev_schedule([1, "2", None, 3.7]) == [1, 2, 0, 3]


def test_parse_dev_schedule_reads_leading_digits():
    assert parse_dev_schedule("12abc,7 units, -3x,x9") == [12, 7, -3, 0]


def test_parse_tiered_royalty():
    assert parse_tiered_royalty('{"500000": 7, "100000": 5}') == {100000.0: 5.0, 500000.0: 7.0}
    assert parse_tiered_royalty("not json") == {}
    assert parse_tiered_royalty("[1, 2]") == {}
    assert parse_tiered_royalty({"x": 1, "200": "4"}) == {200.0: 4.0}


# -- Simulator --

def test_determinism():
    assert compute(DEFAULT_INPUTS, 10) == compute(DEFAULT_INPUTS, 10)
    assert compute(None, 5) == compute(None, 5)


def test_horizon_lengths():
    assert [r["year"] for r in compute(None, 10)] == list(range(1, 11))
    assert len(compute(None, 5)) == 5
    assert compute(None, 0) == []


def test_flat_growth_royalty_scenario():
    inputs = zero_inputs(initial_franchisees=5, new_franchisees_per_year=10, churn_rate=0,
                         avg_unit_revenue=500000, royalty_rate=6)
    recs = compute(inputs, 5)
    opening = [r["active_franchisees"] - r["net_growth"] for r in recs]
    assert opening == [5, 15, 25, 35, 45]
    assert [r["active_franchisees"] for r in recs] == [15, 25, 35, 45, 55]
    for r in recs:
        assert r["royalty_income"] == r["active_franchisees"] * 500000 * 6 / 100


def test_minimum_royalty_floor():
    low = zero_inputs(initial_franchisees=10, min_royalty=True, min_royalty_amount=2000,
                      avg_unit_revenue=10000, royalty_rate=6)
    r = compute(low, 5)[0]
    assert r["active_franchisees"] == 10
    assert r["royalty_income"] == 240000

    high = dict(low, avg_unit_revenue=500000)
    assert compute(high, 5)[0]["royalty_income"] == 300000

    off = dict(low, min_royalty=False)
    assert compute(off, 5)[0]["royalty_income"] == 6000


@pytest.mark.parametrize("churn", [0, 5, 50, 100, 150, 250])
@pytest.mark.parametrize("growth", [0, 3, 20])
def test_active_franchisees_never_negative(churn, growth):
    inputs = zero_inputs(initial_franchisees=5, new_franchisees_per_year=growth, churn_rate=churn)
    for r in compute(inputs, 10):
        assert r["active_franchisees"] >= 0


def test_churn_loss_is_floored_on_previous_count():
    recs = compute(zero_inputs(initial_franchisees=100, churn_rate=5), 10)
    assert [r["churn_loss"] for r in recs[:2]] == [5, 4]
    assert [r["active_franchisees"] for r in recs[:2]] == [95, 91]


def test_schedule_falls_back_to_flat_rate():
    recs = compute(zero_inputs(dev_schedule="3,4", new_franchisees_per_year=10), 10)
    assert [r["new_franchisees"] for r in recs] == [3, 4] + [10] * 8


def test_zero_or_unreadable_schedule_entries_use_flat_rate():
    recs = compute(zero_inputs(dev_schedule="5,abc,0,20", new_franchisees_per_year=10), 10)
    assert [r["new_franchisees"] for r in recs[:4]] == [5, 10, 10, 20]
    assert recs[1]["active_franchisees"] == 15


def test_franchise_sales_override():
    recs = compute(zero_inputs(dev_schedule="3,4", franchise_sales=7), 10)
    assert all(r["new_franchisees"] == 7 for r in recs)


def test_basic_mode_omits_optional_streams():
    recs = compute(DEFAULT_INPUTS, 5)
    assert all(r["churn_loss"] == 0 for r in recs)
    assert all(r["new_franchisees"] == DEFAULT_INPUTS["new_franchisees_per_year"] for r in recs)
    assert all(r["event_revenue"] == 0 and r["vendor_rebates"] == 0 and r["territory_revenue"] == 0 for r in recs)


def test_advanced_mode_includes_optional_streams():
    recs = compute(dict(DEFAULT_INPUTS, supply_chain_revenue=1000000), 10)
    r = recs[0]
    assert r["event_revenue"] == 15000
    assert r["vendor_rebates"] == 20000
    assert r["territory_revenue"] == 25000  # 5 new units -> one territory


def test_explicit_features_override_horizon_default():
    recs = compute(DEFAULT_INPUTS, 10, features=BASIC_FEATURES)
    assert len(recs) == 10
    assert all(r["event_revenue"] == 0 for r in recs)


def test_company_stores_start_with_pilots():
    recs = compute(zero_inputs(pilot_stores=2, company_stores=3, company_rev=100, company_exp=40), 5)
    assert [r["company_stores"] for r in recs[:3]] == [2, 5, 8]
    assert recs[2]["company_profit"] == 8 * 60


def test_one_time_revenue_rules():
    inputs = zero_inputs(initial_franchisees=30, new_franchisees_per_year=10, init_franchise_fee=50000,
                         fee_promo=40000, transfer_fee=1000, equipment_revenue=2000,
                         training_initial=300, training_ongoing=100)
    r = compute(inputs, 5)[0]
    assert r["active_franchisees"] == 40
    assert r["franchise_fee_revenue"] == 10 * 40000
    assert r["transfer_revenue"] == 2 * 1000
    assert r["equipment_revenue"] == 10 * 2000
    assert r["training_revenue"] == 10 * 300 + 40 * 100


def test_territory_fee_per_block_of_five():
    r = compute(zero_inputs(franchise_sales=12, territory_dev_fee=1000), 10)[0]
    assert r["territory_revenue"] == 2000


def test_inflation_compounds_from_year_two():
    recs = compute(zero_inputs(corp_marketing=100000, inflation_rate=10, working_capital=1000), 10)
    assert recs[0]["operating_costs"] == 100000
    assert recs[2]["operating_costs"] == pytest.approx(121000)
    assert recs[2]["working_capital_req"] == pytest.approx(1210)


def test_capex_schedule_and_cumulative_monotonic():
    recs = compute(DEFAULT_INPUTS, 10)
    assert recs[0]["yearly_capex"] == 500000
    assert all(r["yearly_capex"] == 50000 for r in recs[1:])
    cum = [r["cumulative_capex"] for r in recs]
    assert cum == sorted(cum)
    assert cum[-1] == pytest.approx(950000)


def test_revenue_decomposition_is_exact():
    inputs = dict(DEFAULT_INPUTS, pilot_stores=2, company_stores=1, company_rev=900000, company_exp=700000,
                  transfer_fee=10000, equipment_revenue=35000, supply_chain_revenue=2500000)
    for horizon in (5, 10):
        for r in compute(inputs, horizon):
            assert r["total_revenue"] == sum(r[f] for f in REVENUE_FIELDS)


def test_profitability_and_cash_flow():
    for r in compute(DEFAULT_INPUTS, 10):
        assert r["gross_profit"] == r["total_revenue"] - r["operating_costs"]
        assert r["net_profit"] == r["gross_profit"] - r["yearly_capex"]
        assert r["cash_inflows"] == r["total_revenue"]
        assert r["cash_outflows"] == r["operating_costs"] + r["yearly_capex"]
        assert r["net_cash_flow"] == pytest.approx(r["net_profit"])
        assert r["roi_percentage"] == pytest.approx(r["net_profit"] / r["cumulative_capex"] * 100)


def test_division_guards_return_zero():
    recs = compute(zero_inputs(), 10)
    for r in recs:
        assert r["total_revenue"] == 0 and r["active_franchisees"] == 0 and r["cumulative_capex"] == 0
        for key in ("profit_margin", "per_unit_revenue", "per_unit_profit", "roi_percentage"):
            assert r[key] == 0
            assert math.isfinite(r[key])


def test_simulate_does_not_mutate_params():
    params = normalize_inputs(DEFAULT_INPUTS)
    snapshot = deepcopy(params)
    simulate_years(params, 10)
    assert params == snapshot


# -- Chart / KPI projection --

def test_breakeven_detection():
    assert find_breakeven_year([-100, -40, 10, 50]) == 3
    assert find_breakeven_year([-100, -50, -10]) is None
    assert find_breakeven_year([]) is None
    assert find_breakeven_year([0]) == 1


def test_chart_views_shapes():
    recs = compute(DEFAULT_INPUTS, 10)
    charts = project_charts(recs)
    assert len(charts["stacked_bar"]) == len(charts["line"]) == len(charts["cash_flow"]) == 10
    first = charts["stacked_bar"][0]
    r = recs[0]
    assert first["year"] == "Year 1"
    assert first["fees"] == r["franchise_fee_revenue"] + r["transfer_revenue"] + r["training_revenue"]
    assert charts["cash_flow"][0] == {"year": "Year 1", "inflows": r["cash_inflows"],
                                      "outflows": r["cash_outflows"], "net": r["net_cash_flow"]}
    assert [b["cumulative_profit"] for b in charts["breakeven"]] == cumulative_profit(recs)
    assert charts["breakeven_year"] == find_breakeven_year(cumulative_profit(recs))


def test_donut_drops_zero_slices():
    recs = compute(zero_inputs(initial_franchisees=10, avg_unit_revenue=100000, royalty_rate=5), 5)
    donut = project_charts(recs)["donut"]
    assert donut == [{"type": "Royalty Income", "value": 50000}]


def test_sensitivity_ranked_by_absolute_impact():
    sens = project_charts(compute(None, 10))["sensitivity"]
    assert [s["variable"] for s in sens] == ["Unit Revenue", "Royalty Rate", "Growth Rate",
                                            "Churn Rate", "Operating Costs", "Franchise Fee"]


def test_empty_records_give_empty_views():
    charts = project_charts([])
    for key in ("stacked_bar", "donut", "line", "cash_flow", "breakeven", "sensitivity"):
        assert charts[key] == []
    assert charts["breakeven_year"] is None


def test_chart_projection_is_idempotent():
    recs = compute(DEFAULT_INPUTS, 10)
    snapshot = deepcopy(recs)
    assert project_charts(recs) == project_charts(recs)
    assert recs == snapshot


def test_summarize_kpis():
    recs = compute(DEFAULT_INPUTS, 10)
    kpis = summarize_kpis(recs)
    assert kpis["total_revenue"] == recs[0]["total_revenue"]
    assert kpis["active_franchisees"] == recs[0]["active_franchisees"]
    assert len(kpis) == 10
    assert summarize_kpis(recs, year=3)["net_profit"] == recs[2]["net_profit"]
    assert all(v == 0 for v in summarize_kpis([]).values())


def test_kpi_change():
    assert kpi_change(110, 100) == pytest.approx(10)
    assert kpi_change(-50, -100) == pytest.approx(50)
    assert kpi_change(5, 5) == 0
    assert kpi_change(5, 0) == 0
    assert kpi_change(5, None) is None


# -- Analysis helpers --

def test_compare_scenarios():
    a = compute(dict(DEFAULT_INPUTS, royalty_rate=8), 10)
    b = compute(DEFAULT_INPUTS, 10)
    df = compare_scenarios(a, b, year=2)
    row = df.set_index("key").loc["royalty_income"]
    assert row["difference"] == pytest.approx(a[1]["royalty_income"] - b[1]["royalty_income"])
    assert row["pct_difference"] == pytest.approx(100 * 2 / 6)
    assert df.set_index("key").loc["active_franchisees", "difference"] == 0
    assert "breakeven_a" in df.attrs


def test_compare_scenarios_zero_baseline():
    a = compute(zero_inputs(initial_franchisees=1), 5)
    b = compute(zero_inputs(), 5)
    row = compare_scenarios(a, b).set_index("key").loc["active_franchisees"]
    assert row["difference"] == 1
    assert row["pct_difference"] == 0


def test_compare_scenarios_missing_year():
    assert compare_scenarios(compute(None, 5), compute(None, 5), year=9).empty


def test_apply_scenario_overrides():
    base = {"royalty_rate": 6}
    out = apply_scenario_overrides(base, {"label": "x", "churnRate": 9})
    assert out == {"royalty_rate": 6, "churn_rate": 9}
    assert base == {"royalty_rate": 6}


def test_scenario_comparison_table():
    t = scenario_comparison_table(DEFAULT_INPUTS).set_index("scenario")
    assert list(t.index) == ["Bear (Downside)", "Base Case", "Bull (Upside)"]
    assert t.loc["Bull (Upside)", "final_revenue"] > t.loc["Bear (Downside)", "final_revenue"]


def test_tornado_sensitivity():
    df = tornado_sensitivity(DEFAULT_INPUTS, 10)
    assert len(df) == 12
    assert list(df["abs_impact"]) == sorted(df["abs_impact"], reverse=True)
    by = df.set_index(["variable", "side"])["net_profit_change"]
    assert by["Royalty Rate", "high"] > 0
    assert by["Royalty Rate", "low"] < 0
    assert by["Operating Costs", "high"] < 0


def test_run_projection_and_exports():
    res = run_projection(DEFAULT_INPUTS, 10)
    assert isinstance(res["projection"], pd.DataFrame)
    assert len(res["projection"]) == 10
    assert list(res["statement"].columns) == ["Line Item"] + [f"Year {i}" for i in range(1, 11)]
    csvs = export_results_csv(res, prefix="t")
    assert {"t_projection.csv", "t_statement.csv", "t_kpis.csv", "t_breakeven.csv"} <= set(csvs)
    blob = export_all_to_zip(res, DEFAULT_INPUTS, prefix="t")
    with zipfile.ZipFile(io.BytesIO(blob)) as zf:
        assert "scenario_comparison.csv" in zf.namelist()
        assert "t_projection.csv" in zf.namelist()


def test_run_projection_empty_horizon():
    res = run_projection(None, 0)
    assert res["records"] == []
    assert res["projection"].empty
    assert res["breakeven_year"] is None
