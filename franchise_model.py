"""
Franchise Network Financial Model Engine
Year-by-year projection of network growth, revenue composition, profitability
and cash flow for a franchisor. Basic (5-year) and advanced (10-year) modes
share one simulator; chart and KPI views are pure reshapes of its records.
"""
import io, json, logging, math, re, zipfile
import numpy as np
import pandas as pd
from typing import Dict, List, Optional
from copy import deepcopy

logger = logging.getLogger(__name__)

# ── Model Assumptions ───────────────────────────────────────

TRANSFER_RATE = 0.05           # share of active units transferring each year
TERRITORY_BLOCK = 5            # new units per territory development fee
MAINTENANCE_CAPEX_RATE = 0.10  # ongoing capex after year 1, share of master capex
MONTHS_PER_YEAR = 12

# ── Default Inputs ──────────────────────────────────────────

DEFAULTS_VERSION = 2

DEFAULT_INPUTS = {
    # Network development
    "initial_franchisees": 5,
    "new_franchisees_per_year": 10,
    "dev_schedule": "5,10,15,20,25",
    "franchise_sales": 0,
    "churn_rate": 5.0,
    "pilot_stores": 0,
    "company_stores": 0,
    "company_rev": 0.0,
    "company_exp": 0.0,
    # Franchisee economics
    "init_franchise_fee": 50000.0,
    "fee_promo": 0.0,
    "transfer_fee": 0.0,
    "equipment_revenue": 0.0,
    "training_initial": 15000.0,
    "training_ongoing": 5000.0,
    # Recurring revenue
    "avg_unit_revenue": 500000.0,
    "royalty_rate": 6.0,
    "min_royalty": False,
    "min_royalty_amount": 0.0,
    "tiered_royalty": False,
    "tiered_royalty_structure": "",
    "marketing_levy": 2.0,
    "tech_fee": 200.0,
    "support_fee": 100.0,
    "supply_chain_revenue": 0.0,
    "vendor_rebate_rate": 2.0,
    # Operating costs
    "corp_marketing": 100000.0,
    "staff_payroll": 200000.0,
    "legal_compliance": 50000.0,
    "tech_infrastructure": 75000.0,
    "training_development": 25000.0,
    "other_costs": 30000.0,
    "local_area_marketing": 20000.0,
    "inflation_rate": 3.0,
    # Capital & other
    "master_capex": 500000.0,
    "working_capital": 100000.0,
    "territory_dev_fee": 25000.0,
    "event_revenue": 15000.0,
    "lead_conversion": 15.0,
}

INPUT_ALIASES = {
    "initialFranchisees": "initial_franchisees", "newFranchiseesPerYear": "new_franchisees_per_year",
    "devSchedule": "dev_schedule", "franchiseSales": "franchise_sales", "churnRate": "churn_rate",
    "pilotStores": "pilot_stores", "companyStores": "company_stores", "companyRev": "company_rev",
    "companyExp": "company_exp", "initFranchiseFee": "init_franchise_fee", "masterFranchiseFee": "init_franchise_fee",
    "feePromo": "fee_promo", "transferFee": "transfer_fee", "equipmentRevenue": "equipment_revenue",
    "trainingInitial": "training_initial", "trainingFee": "training_initial", "trainingOngoing": "training_ongoing",
    "avgUnitRevenue": "avg_unit_revenue", "royaltyRate": "royalty_rate", "minRoyalty": "min_royalty",
    "minRoyaltyAmount": "min_royalty_amount", "tieredRoyalty": "tiered_royalty",
    "tieredRoyaltyStructure": "tiered_royalty_structure", "marketingLevy": "marketing_levy",
    "marketingLevyRate": "marketing_levy", "techFee": "tech_fee", "techFeePerUnit": "tech_fee",
    "supportFee": "support_fee", "supplyChainRevenue": "supply_chain_revenue",
    "vendorRebateRate": "vendor_rebate_rate", "corpMarketing": "corp_marketing", "staffPayroll": "staff_payroll",
    "legalCompliance": "legal_compliance", "techInfrastructure": "tech_infrastructure",
    "trainingDevelopment": "training_development", "otherCosts": "other_costs",
    "localAreaMarketing": "local_area_marketing", "inflationRate": "inflation_rate",
    "masterCapex": "master_capex", "workingCapital": "working_capital", "territoryDevFee": "territory_dev_fee",
    "eventRevenue": "event_revenue", "leadConversion": "lead_conversion",
}

COUNT_FIELDS = ("initial_franchisees", "new_franchisees_per_year", "franchise_sales",
                "pilot_stores", "company_stores")
BOOL_FIELDS = ("min_royalty", "tiered_royalty")
COST_FIELDS = ("corp_marketing", "staff_payroll", "legal_compliance", "tech_infrastructure",
               "training_development", "other_costs", "local_area_marketing")

# ── Feature Sets ────────────────────────────────────────────

ADVANCED_FEATURES = {"dev_schedule": True, "churn": True, "supply_chain": True, "territory": True, "events": True}
BASIC_FEATURES = {"dev_schedule": False, "churn": False, "supply_chain": False, "territory": False, "events": False}
HORIZON_FEATURES = {5: BASIC_FEATURES, 10: ADVANCED_FEATURES}

def features_for_horizon(horizon_years):
    return dict(HORIZON_FEATURES.get(horizon_years, ADVANCED_FEATURES))

# ── N1: Coercion ────────────────────────────────────────────

def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())

def _to_number(field, value, default):
    if _is_blank(value):
        return default
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value.replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid numeric value for {field}: {value!r}, using 0")
        return 0.0
    if not np.isfinite(number):
        logger.warning(f"Non-finite value for {field}: {value!r}, using 0")
        return 0.0
    return number

def _to_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    if value is None:
        return False
    if isinstance(value, (float, np.floating)) and not np.isfinite(value):
        return False
    return bool(value)

_LEADING_INT = re.compile(r"\s*([-+]?\d+)")

def _parse_int_token(token):
    """Leading integer of a token ("12abc" -> 12); 0 when there is none."""
    m = _LEADING_INT.match(token) if isinstance(token, str) else None
    return int(m.group(1)) if m else 0

def parse_dev_schedule(value) -> List[int]:
    """Comma-separated yearly targets ("5,10,15") or a sequence -> list of ints."""
    if _is_blank(value):
        return []
    if isinstance(value, str):
        return [_parse_int_token(t) for t in value.split(",")]
    try:
        return [_parse_int_token(str(v)) for v in value]
    except TypeError:
        logger.warning(f"Unreadable development schedule: {value!r}")
        return []

def parse_tiered_royalty(value) -> Dict[float, float]:
    """Revenue threshold -> royalty rate map; anything unreadable falls back to {}."""
    if _is_blank(value):
        return {}
    raw = value
    if isinstance(value, str):
        try:
            raw = json.loads(value)
        except ValueError:
            logger.warning(f"Unreadable tiered royalty structure: {value!r}")
            return {}
    if not isinstance(raw, dict):
        return {}
    tiers = {}
    for k, v in raw.items():
        try:
            threshold, rate = float(k), float(v)
        except (TypeError, ValueError):
            continue
        if np.isfinite(threshold) and np.isfinite(rate):
            tiers[threshold] = rate
    return dict(sorted(tiers.items()))

# ── N2: Normalization ───────────────────────────────────────

def normalize_inputs(raw=None, defaults=DEFAULT_INPUTS) -> Dict:
    """Merge raw inputs over the defaults into a fully populated parameter set."""
    raw = raw or {}
    # snake_case keys win over their camelCase aliases
    resolved = {k: v for k, v in raw.items() if k in defaults}
    for k, v in raw.items():
        key = INPUT_ALIASES.get(k)
        if key in defaults and key not in resolved:
            resolved[key] = v
    params = {}
    for key, default in defaults.items():
        value = resolved.get(key)
        if key == "dev_schedule":
            params[key] = parse_dev_schedule(default if value is None else value)
        elif key == "tiered_royalty_structure":
            params[key] = parse_tiered_royalty(default if value is None else value)
        elif key in BOOL_FIELDS:
            params[key] = _to_bool(value) if key in resolved else bool(default)
        else:
            number = _to_number(key, value, default)
            params[key] = int(number) if key in COUNT_FIELDS else float(number)
    return params

# ── S1: Year-by-Year Simulator ──────────────────────────────

REVENUE_FIELDS = ("franchise_fee_revenue", "transfer_revenue", "equipment_revenue", "training_revenue",
                  "royalty_income", "marketing_fund", "tech_fee_revenue", "support_fee_revenue",
                  "vendor_rebates", "territory_revenue", "event_revenue", "company_profit")

def _safe_div(numerator, denominator):
    if denominator is None or denominator == 0 or not np.isfinite(denominator):
        return 0.0
    return numerator / denominator

def simulate_years(params, horizon_years=10, features=None) -> List[Dict]:
    if features is None:
        features = features_for_horizon(horizon_years)
    p = params
    schedule = p["dev_schedule"] if features.get("dev_schedule") else []
    churn_pct = p["churn_rate"] if features.get("churn") else 0.0
    costs_base = sum(p[k] for k in COST_FIELDS)
    rows = []; active = p["initial_franchisees"]; cum_capex = 0.0
    for year in range(1, int(horizon_years) + 1):
        # Network growth; empty or zero schedule entries fall back to the flat rate
        target = schedule[year - 1] if year <= len(schedule) and schedule[year - 1] else p["new_franchisees_per_year"]
        growth = p["franchise_sales"] if p["franchise_sales"] > 0 else target
        churn_loss = math.floor(active * churn_pct / 100)
        net_growth = growth - churn_loss
        active = max(0, active + net_growth)

        # Company stores (pilots only in year 1)
        stores = p["pilot_stores"] + p["company_stores"] * (year - 1)
        company_profit = stores * (p["company_rev"] - p["company_exp"])

        # One-time / new-unit revenue
        fee = p["fee_promo"] if p["fee_promo"] > 0 else p["init_franchise_fee"]
        franchise_fees = growth * fee
        transfers = math.floor(active * TRANSFER_RATE) * p["transfer_fee"]
        equipment = growth * p["equipment_revenue"]
        training = growth * p["training_initial"] + active * p["training_ongoing"]

        # Recurring revenue
        unit_sales = active * p["avg_unit_revenue"]
        gross_royalty = unit_sales * p["royalty_rate"] / 100
        if p["min_royalty"]:
            royalty = max(gross_royalty, active * p["min_royalty_amount"] * MONTHS_PER_YEAR)
        else:
            royalty = gross_royalty
        marketing = unit_sales * p["marketing_levy"] / 100
        tech = active * p["tech_fee"] * MONTHS_PER_YEAR
        support = active * p["support_fee"] * MONTHS_PER_YEAR
        rebates = p["supply_chain_revenue"] * p["vendor_rebate_rate"] / 100 if features.get("supply_chain") else 0.0
        territory = (growth // TERRITORY_BLOCK) * p["territory_dev_fee"] if features.get("territory") else 0.0
        events = p["event_revenue"] if features.get("events") else 0.0

        rec = {"year": year, "active_franchisees": active, "new_franchisees": growth,
               "churn_loss": churn_loss, "net_growth": net_growth, "company_stores": stores,
               "franchise_fee_revenue": franchise_fees, "transfer_revenue": transfers,
               "equipment_revenue": equipment, "training_revenue": training,
               "royalty_income": royalty, "marketing_fund": marketing,
               "tech_fee_revenue": tech, "support_fee_revenue": support,
               "vendor_rebates": rebates, "territory_revenue": territory,
               "event_revenue": events, "company_profit": company_profit}
        total = sum(rec[f] for f in REVENUE_FIELDS)

        # Costs, inflation compounding from year 2
        inflation = (1 + p["inflation_rate"] / 100) ** (year - 1)
        opex = costs_base * inflation
        capex = p["master_capex"] if year == 1 else p["master_capex"] * MAINTENANCE_CAPEX_RATE
        cum_capex += capex

        gross_profit = total - opex
        net_profit = gross_profit - capex
        rec.update({"total_revenue": total, "operating_costs": opex, "yearly_capex": capex,
                    "cumulative_capex": cum_capex, "gross_profit": gross_profit,
                    "net_profit": net_profit, "profit_margin": _safe_div(net_profit, total) * 100,
                    "per_unit_revenue": _safe_div(total, active), "per_unit_profit": _safe_div(net_profit, active),
                    "cash_inflows": total, "cash_outflows": opex + capex, "net_cash_flow": total - (opex + capex),
                    "roi_percentage": _safe_div(net_profit, cum_capex) * 100,
                    "working_capital_req": p["working_capital"] * inflation,
                    "lead_conversion_rate": p["lead_conversion"]})
        rows.append(rec)
    return rows

def compute(inputs=None, horizon_years=10, features=None) -> List[Dict]:
    """Normalize raw inputs and simulate years 1..horizon_years."""
    params = normalize_inputs(inputs)
    if features is None:
        features = features_for_horizon(horizon_years)
    logger.debug(f"Projecting {horizon_years} years with features {features}")
    return simulate_years(params, horizon_years, features)

RECORD_COLUMNS = ["year", "active_franchisees", "new_franchisees", "churn_loss", "net_growth", "company_stores",
                  *REVENUE_FIELDS, "total_revenue", "operating_costs", "yearly_capex", "cumulative_capex",
                  "gross_profit", "net_profit", "profit_margin", "per_unit_revenue", "per_unit_profit",
                  "cash_inflows", "cash_outflows", "net_cash_flow", "roi_percentage",
                  "working_capital_req", "lead_conversion_rate"]

def build_projection_frame(records):
    if not records:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    return pd.DataFrame(records, columns=RECORD_COLUMNS)

# ── C1: Chart / KPI Projector ───────────────────────────────

# Illustrative ranking shown on the dashboard; not derived from inputs.
# See tornado_sensitivity for a recomputed version.
SENSITIVITY_IMPACTS = [
    {"variable": "Royalty Rate", "impact": 25},
    {"variable": "Franchise Fee", "impact": 15},
    {"variable": "Churn Rate", "impact": -20},
    {"variable": "Unit Revenue", "impact": 30},
    {"variable": "Operating Costs", "impact": -18},
    {"variable": "Growth Rate", "impact": 22},
]

def _label(rec): return f"Year {rec['year']}"

def cumulative_profit(records) -> List[float]:
    out = []; running = 0.0
    for rec in records:
        running += rec["net_profit"]; out.append(running)
    return out

def find_breakeven_year(series) -> Optional[int]:
    """First 1-indexed year whose cumulative profit is non-negative, else None."""
    for i, value in enumerate(series or [], start=1):
        if value is not None and value >= 0:
            return i
    return None

def project_charts(records) -> Dict:
    records = list(records or [])
    stacked = [{"year": _label(r), "royalty": r["royalty_income"],
                "fees": r["franchise_fee_revenue"] + r["transfer_revenue"] + r["training_revenue"],
                "company": r["company_profit"],
                "other": r["tech_fee_revenue"] + r["support_fee_revenue"] + r["vendor_rebates"]
                         + r["territory_revenue"] + r["event_revenue"]} for r in records]
    donut = []
    if records:
        f = records[0]
        donut = [d for d in [
            {"type": "Royalty Income", "value": f["royalty_income"]},
            {"type": "Franchise Fees", "value": f["franchise_fee_revenue"]},
            {"type": "Company Stores", "value": f["company_profit"]},
            {"type": "Tech & Support", "value": f["tech_fee_revenue"] + f["support_fee_revenue"]},
            {"type": "Other Revenue", "value": f["vendor_rebates"] + f["territory_revenue"] + f["event_revenue"]},
        ] if d["value"] > 0]
    line = [{"year": _label(r), "total_revenue": r["total_revenue"], "net_profit": r["net_profit"],
             "operating_costs": r["operating_costs"]} for r in records]
    cash = [{"year": _label(r), "inflows": r["cash_inflows"], "outflows": r["cash_outflows"],
             "net": r["net_cash_flow"]} for r in records]
    cum = cumulative_profit(records)
    breakeven = [{"year": _label(r), "cumulative_profit": c} for r, c in zip(records, cum)]
    sensitivity = []
    if records:
        sensitivity = sorted((dict(s) for s in SENSITIVITY_IMPACTS), key=lambda s: abs(s["impact"]), reverse=True)
    return {"stacked_bar": stacked, "donut": donut, "line": line, "cash_flow": cash,
            "breakeven": breakeven, "breakeven_year": find_breakeven_year(cum), "sensitivity": sensitivity}

KPI_CARDS = [
    {"label": "Total Network Revenue", "key": "total_revenue", "format": "currency"},
    {"label": "Royalty Income", "key": "royalty_income", "format": "currency"},
    {"label": "Franchise Fee Revenue", "key": "franchise_fee_revenue", "format": "currency"},
    {"label": "Net Profit", "key": "net_profit", "format": "currency"},
    {"label": "Company Store Profit", "key": "company_profit", "format": "currency"},
    {"label": "Active Franchisees", "key": "active_franchisees", "format": "number"},
    {"label": "Profit Margin", "key": "profit_margin", "format": "percentage"},
    {"label": "Revenue Per Unit", "key": "per_unit_revenue", "format": "currency"},
    {"label": "Marketing Fund", "key": "marketing_fund", "format": "currency"},
    {"label": "Tech Fee Revenue", "key": "tech_fee_revenue", "format": "currency"},
]

def summarize_kpis(records, year=1) -> Dict:
    rec = next((r for r in records or [] if r["year"] == year), None)
    return {c["key"]: (rec[c["key"]] if rec else 0) for c in KPI_CARDS}

def kpi_change(current, previous):
    """Percent change of a KPI against a comparison value (None when there is none)."""
    if previous is None:
        return None
    if current == previous or previous == 0 or not np.isfinite(previous) or not np.isfinite(current):
        return 0.0
    return (current - previous) / abs(previous) * 100

# -- A1: Scenario Comparison --

COMPARISON_METRICS = [("Total Revenue", "total_revenue"), ("Net Profit", "net_profit"),
                      ("Active Franchisees", "active_franchisees"), ("Profit Margin", "profit_margin"),
                      ("Revenue Per Unit", "per_unit_revenue"), ("Royalty Income", "royalty_income")]

def compare_scenarios(records_a, records_b, year=1):
    a = next((r for r in records_a if r["year"] == year), None)
    b = next((r for r in records_b if r["year"] == year), None)
    rows = []
    if a is None or b is None:
        return pd.DataFrame(rows, columns=["metric", "key", "scenario_a", "scenario_b", "difference", "pct_difference"])
    for label, key in COMPARISON_METRICS:
        d = a[key] - b[key]
        rows.append({"metric": label, "key": key, "scenario_a": a[key], "scenario_b": b[key],
                     "difference": d, "pct_difference": _safe_div(d, abs(b[key])) * 100})
    df = pd.DataFrame(rows)
    df.attrs["breakeven_a"] = find_breakeven_year(cumulative_profit(records_a))
    df.attrs["breakeven_b"] = find_breakeven_year(cumulative_profit(records_b))
    return df

# -- A2: Scenario Presets --

SCENARIO_PRESETS = {
    "bear": {"label": "Bear (Downside)", "churn_rate": 10.0, "royalty_rate": 5.0,
             "avg_unit_revenue": 400000.0, "new_franchisees_per_year": 6,
             "dev_schedule": "3,6,9,12,15", "inflation_rate": 4.0},
    "base": {"label": "Base Case"},
    "bull": {"label": "Bull (Upside)", "churn_rate": 3.0, "royalty_rate": 7.0,
             "avg_unit_revenue": 600000.0, "new_franchisees_per_year": 15,
             "dev_schedule": "8,14,20,26,32", "inflation_rate": 2.0},
}

def apply_scenario_overrides(inputs, overrides):
    c = deepcopy(dict(inputs or {}))
    for k, v in (overrides or {}).items():
        if k == "label": continue
        c[INPUT_ALIASES.get(k, k)] = v
    return c

def run_scenario(inputs=None, scenario="base", custom_overrides=None, horizon_years=10):
    preset = SCENARIO_PRESETS.get(scenario, {})
    c = apply_scenario_overrides(inputs, preset)
    if custom_overrides: c = apply_scenario_overrides(c, custom_overrides)
    return run_projection(c, horizon_years)

def scenario_comparison_table(inputs=None, scenarios=None, horizon_years=10):
    if scenarios is None: scenarios = ["bear", "base", "bull"]
    rows = []
    for s in scenarios:
        res = run_scenario(inputs, s, horizon_years=horizon_years); recs = res["records"]
        if not recs: continue
        first, last = recs[0], recs[-1]
        rows.append({"scenario": SCENARIO_PRESETS.get(s, {}).get("label", s.capitalize()),
                     "y1_revenue": first["total_revenue"], "final_revenue": last["total_revenue"],
                     "y1_net_profit": first["net_profit"], "final_net_profit": last["net_profit"],
                     "final_margin": last["profit_margin"], "final_franchisees": last["active_franchisees"],
                     "cumulative_profit": cumulative_profit(recs)[-1],
                     "breakeven_year": res["breakeven_year"], "final_roi": last["roi_percentage"]})
    return pd.DataFrame(rows)

# -- A3: Tornado Sensitivity (recomputed) --

TORNADO_VARIABLES = [
    ("Royalty Rate", ("royalty_rate",)),
    ("Franchise Fee", ("init_franchise_fee",)),
    ("Churn Rate", ("churn_rate",)),
    ("Unit Revenue", ("avg_unit_revenue",)),
    ("Operating Costs", COST_FIELDS),
    ("Growth Rate", ("new_franchisees_per_year", "dev_schedule")),
]

def _scaled(params, keys, factor):
    c = deepcopy(params)
    for k in keys:
        if k == "dev_schedule":
            c[k] = [int(round(v * factor)) for v in c[k]]
        elif k in COUNT_FIELDS:
            c[k] = int(round(c[k] * factor))
        else:
            c[k] = c[k] * factor
    return c

def tornado_sensitivity(inputs=None, horizon_years=10, target_year=None, swing=0.10):
    """Move each driver by +/- swing and record the change in the target year's net profit."""
    params = normalize_inputs(inputs); features = features_for_horizon(horizon_years)
    base = simulate_years(params, horizon_years, features)
    rows = []
    if not base:
        return pd.DataFrame(rows, columns=["variable", "side", "factor", "net_profit", "net_profit_change", "abs_impact"])
    idx = min((target_year or len(base)) - 1, len(base) - 1); be = base[idx]["net_profit"]
    for label, keys in TORNADO_VARIABLES:
        for factor, side in [(1 - swing, "low"), (1 + swing, "high")]:
            e = simulate_years(_scaled(params, keys, factor), horizon_years, features)[idx]["net_profit"]
            rows.append({"variable": label, "side": side, "factor": factor,
                         "net_profit": e, "net_profit_change": e - be})
    df = pd.DataFrame(rows)
    df["abs_impact"] = df.groupby("variable")["net_profit_change"].transform(lambda x: x.abs().max())
    return df.sort_values(["abs_impact", "variable", "side"], ascending=[False, True, True]).reset_index(drop=True)

# -- Statement (formatted) --

STATEMENT_LINES = [
    ("NETWORK", None), ("Active Franchisees", "active_franchisees"), ("New Franchisees", "new_franchisees"),
    ("Churn Loss", "churn_loss"), ("Company Stores", "company_stores"), ("", None),
    ("REVENUE", None), ("Franchise Fees", "franchise_fee_revenue"), ("Transfer Fees", "transfer_revenue"),
    ("Equipment", "equipment_revenue"), ("Training", "training_revenue"), ("Royalty Income", "royalty_income"),
    ("Marketing Fund", "marketing_fund"), ("Tech Fees", "tech_fee_revenue"), ("Support Fees", "support_fee_revenue"),
    ("Vendor Rebates", "vendor_rebates"), ("Territory Fees", "territory_revenue"), ("Events", "event_revenue"),
    ("Company Store Profit", "company_profit"), ("Total Revenue", "total_revenue"), ("", None),
    ("Operating Costs", "operating_costs"), ("Gross Profit", "gross_profit"), ("Capex", "yearly_capex"),
    ("Net Profit", "net_profit"), ("Profit Margin (%)", "profit_margin"), ("ROI (%)", "roi_percentage"),
]

def format_projection_statement(frame):
    result = pd.DataFrame({"Line Item": [label for label, _ in STATEMENT_LINES]})
    for _, r in frame.iterrows():
        result[f"Year {int(r['year'])}"] = [r[key] if key else None for _, key in STATEMENT_LINES]
    return result

# -- Master: Run Projection --

def run_projection(inputs=None, horizon_years=10):
    params = normalize_inputs(inputs); features = features_for_horizon(horizon_years)
    logger.debug(f"Projecting {horizon_years} years with features {features}")
    records = simulate_years(params, horizon_years, features)
    frame = build_projection_frame(records); charts = project_charts(records)
    return {"params": params, "horizon_years": horizon_years, "features": features,
            "records": records, "projection": frame, "charts": charts,
            "kpis": summarize_kpis(records), "breakeven_year": charts["breakeven_year"],
            "statement": format_projection_statement(frame)}

# -- CSV/ZIP Export --

def export_results_csv(result, prefix="franchise"):
    exports = {f"{prefix}_projection.csv": result["projection"].to_csv(index=False),
               f"{prefix}_statement.csv": result["statement"].to_csv(index=False)}
    for key in ["stacked_bar", "line", "cash_flow", "breakeven", "sensitivity"]:
        exports[f"{prefix}_{key}.csv"] = pd.DataFrame(result["charts"][key]).to_csv(index=False)
    kr = [{"metric": c["label"], "value": result["kpis"][c["key"]]} for c in KPI_CARDS]
    kr.append({"metric": "Breakeven Year", "value": result["breakeven_year"]})
    exports[f"{prefix}_kpis.csv"] = pd.DataFrame(kr).to_csv(index=False)
    return exports

def export_all_to_zip(result, inputs=None, prefix="franchise"):
    csvs = export_results_csv(result, prefix)
    csvs["scenario_comparison.csv"] = scenario_comparison_table(inputs, horizon_years=result["horizon_years"]).to_csv(index=False)
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in csvs.items(): zf.writestr(name, content)
    return buf.getvalue()

# -- Entry Point --

if __name__ == "__main__":
    result = run_projection()
    p = result["projection"]
    print(p[["year", "active_franchisees", "total_revenue", "net_profit", "profit_margin"]].to_string(index=False))
    print(f"Breakeven: {result['breakeven_year'] or 'not reached'}")
    print("Done.")
