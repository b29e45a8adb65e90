"""
Franchise Network Model — Dashboard
Streamlit app: inputs, KPI cards, projection charts, saved scenarios and comparison.
Requires: streamlit, plotly, pandas, numpy
Run: streamlit run app.py
"""

import logging
import streamlit as st
import plotly.graph_objects as go
import pandas as pd
from copy import deepcopy

from franchise_model import (DEFAULT_INPUTS, KPI_CARDS, SCENARIO_PRESETS, apply_scenario_overrides, compare_scenarios, export_all_to_zip,
                             kpi_change, run_projection, scenario_comparison_table, summarize_kpis, tornado_sensitivity)
from scenario_store import ScenarioStore, ScenarioStoreError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Franchise Network Model", layout="wide", initial_sidebar_state="expanded")

COLORS = {
    "primary": "#0A3466", "accent": "#1B9AAA", "accent2": "#06D6A0", "warn": "#F4845F",
    "danger": "#E63946", "revenue": "#1B9AAA", "costs": "#E63946", "profit": "#06D6A0",
    "royalty": "#0A3466", "fees": "#1B9AAA", "company": "#7B2CBF", "other": "#F4845F",
}

st.markdown("""
<style>
    .stApp { background: #F8F9FC; }
    [data-testid="stSidebar"] { background-color: #FFFFFF !important; border-right: 1px solid #E5E7EB; }
    .metric-card { background: #FFFFFF; border-radius: 8px; padding: 1.2rem; border: 1px solid #E5E7EB; margin-bottom: 1rem; }
    .metric-label { font-size: 0.75rem; font-weight: 600; color: #6B7280; text-transform: uppercase; }
    .metric-value { font-size: 1.6rem; font-weight: 700; color: #0A3466; }
    .metric-delta { font-size: 0.8rem; font-weight: 600; }
    .status-green { color: #06D6A0; } .status-red { color: #E63946; }
    .header-box { background: #0A3466; color: white; padding: 1.5rem; border-radius: 10px; margin-bottom: 2rem; }
    .header-box h1, .header-box p { color: white !important; margin: 0; }
</style>
""", unsafe_allow_html=True)

def fmt_c(val): return f"${val:,.0f}" if pd.notnull(val) else "—"
def fmt_p(val): return f"{val:.1f}%" if pd.notnull(val) else "—"
def fmt_n(val): return f"{val:,.0f}" if pd.notnull(val) else "—"

FORMATTERS = {"currency": fmt_c, "percentage": fmt_p, "number": fmt_n}

def get_layout(title=""):
    return dict(
        title=dict(text=title, font=dict(size=16, color=COLORS["primary"])),
        plot_bgcolor="white", paper_bgcolor="white", margin=dict(t=50, b=30, l=50, r=20),
        xaxis=dict(showgrid=True, gridcolor="#F3F4F6"), yaxis=dict(showgrid=True, gridcolor="#F3F4F6")
    )

def kpi_cards(kpis, previous=None):
    cols = st.columns(5)
    for i, card in enumerate(KPI_CARDS):
        value = kpis[card["key"]]
        change = kpi_change(value, previous[card["key"]]) if previous else None
        delta = ""
        if change is not None:
            cls = "status-green" if change > 0 else ("status-red" if change < 0 else "")
            delta = f"<div class='metric-delta {cls}'>{change:+.1f}%</div>"
        cols[i % 5].markdown(
            f"<div class='metric-card'><div class='metric-label'>{card['label']}</div>"
            f"<div class='metric-value'>{FORMATTERS[card['format']](value)}</div>{delta}</div>",
            unsafe_allow_html=True)

def breakeven_figure(charts, title="Cumulative Profit"):
    be = pd.DataFrame(charts["breakeven"])
    fig = go.Figure()
    if not be.empty:
        fig.add_trace(go.Scatter(x=be["year"], y=be["cumulative_profit"], name="Cumulative Profit",
                                 line=dict(color=COLORS["primary"], width=3)))
        fig.add_hline(y=0, line_dash="dash", line_color="#888")
        if charts["breakeven_year"]:
            fig.add_vline(x=charts["breakeven_year"] - 1, line_dash="dot", line_color=COLORS["profit"])
            title = f"{title} (Breakeven: Year {charts['breakeven_year']})"
    fig.update_layout(**get_layout(title))
    return fig

# ─────────────────────────────────────────────────────────────
# STATE INIT
# ─────────────────────────────────────────────────────────────
if "inputs" not in st.session_state:
    st.session_state["inputs"] = deepcopy(DEFAULT_INPUTS)
if "store" not in st.session_state:
    st.session_state["store"] = ScenarioStore()

# ─────────────────────────────────────────────────────────────
# SIDEBAR
# ─────────────────────────────────────────────────────────────
st.sidebar.markdown("### Franchise Network Model")
user_id = st.sidebar.text_input("User", value=st.session_state.get("user_id", "local"))
st.session_state["user_id"] = user_id
mode = st.sidebar.radio("Mode", ["Advanced (10 years)", "Basic (5 years)"])
horizon = 10 if mode.startswith("Advanced") else 5
page = st.sidebar.radio("Navigation", [
    "Inputs",
    "Dashboard",
    "Scenarios",
    "Comparison",
    "Projection Table",
])

inputs = st.session_state["inputs"]
store = st.session_state["store"]

# ─────────────────────────────────────────────────────────────
# PAGES
# ─────────────────────────────────────────────────────────────

if page == "Inputs":
    st.markdown("## Business Inputs")
    col1, col2, col3 = st.columns(3)
    with col1:
        st.subheader("Network Development")
        inputs["initial_franchisees"] = st.number_input("Initial Franchisees", 0, 10000, int(inputs["initial_franchisees"]))
        inputs["new_franchisees_per_year"] = st.number_input("New Franchisees / Year", 0, 10000, int(inputs["new_franchisees_per_year"]))
        inputs["dev_schedule"] = st.text_input("Development Schedule (per year, comma separated)", inputs["dev_schedule"])
        inputs["franchise_sales"] = st.number_input("Franchise Sales Override", 0, 10000, int(inputs["franchise_sales"]))
        inputs["churn_rate"] = st.number_input("Churn Rate (%)", 0.0, 100.0, float(inputs["churn_rate"]))
        inputs["pilot_stores"] = st.number_input("Pilot Stores", 0, 1000, int(inputs["pilot_stores"]))
        inputs["company_stores"] = st.number_input("Company Stores Added / Year", 0, 1000, int(inputs["company_stores"]))
        inputs["company_rev"] = st.number_input("Company Store Revenue ($)", 0.0, None, float(inputs["company_rev"]))
        inputs["company_exp"] = st.number_input("Company Store Expenses ($)", 0.0, None, float(inputs["company_exp"]))
    with col2:
        st.subheader("Franchisee Economics & Royalties")
        inputs["init_franchise_fee"] = st.number_input("Franchise Fee ($)", 0.0, None, float(inputs["init_franchise_fee"]))
        inputs["fee_promo"] = st.number_input("Promotional Fee ($)", 0.0, None, float(inputs["fee_promo"]))
        inputs["transfer_fee"] = st.number_input("Transfer Fee ($)", 0.0, None, float(inputs["transfer_fee"]))
        inputs["equipment_revenue"] = st.number_input("Equipment Revenue / Unit ($)", 0.0, None, float(inputs["equipment_revenue"]))
        inputs["training_initial"] = st.number_input("Initial Training Fee ($)", 0.0, None, float(inputs["training_initial"]))
        inputs["training_ongoing"] = st.number_input("Ongoing Training Fee ($)", 0.0, None, float(inputs["training_ongoing"]))
        inputs["avg_unit_revenue"] = st.number_input("Average Unit Revenue ($)", 0.0, None, float(inputs["avg_unit_revenue"]))
        inputs["royalty_rate"] = st.number_input("Royalty Rate (%)", 0.0, 100.0, float(inputs["royalty_rate"]))
        inputs["min_royalty"] = st.checkbox("Enforce Minimum Royalty", value=bool(inputs["min_royalty"]))
        inputs["min_royalty_amount"] = st.number_input("Minimum Monthly Royalty ($)", 0.0, None, float(inputs["min_royalty_amount"]))
        inputs["marketing_levy"] = st.number_input("Marketing Levy (%)", 0.0, 100.0, float(inputs["marketing_levy"]))
        inputs["tech_fee"] = st.number_input("Monthly Tech Fee ($)", 0.0, None, float(inputs["tech_fee"]))
        inputs["support_fee"] = st.number_input("Monthly Support Fee ($)", 0.0, None, float(inputs["support_fee"]))
        inputs["supply_chain_revenue"] = st.number_input("Supply Chain Revenue ($)", 0.0, None, float(inputs["supply_chain_revenue"]))
        inputs["vendor_rebate_rate"] = st.number_input("Vendor Rebate Rate (%)", 0.0, 100.0, float(inputs["vendor_rebate_rate"]))
    with col3:
        st.subheader("Operating Costs & Capital")
        for key, label in [("corp_marketing", "Corporate Marketing"), ("staff_payroll", "Staff Payroll"),
                           ("legal_compliance", "Legal & Compliance"), ("tech_infrastructure", "Tech Infrastructure"),
                           ("training_development", "Training & Development"), ("other_costs", "Other Costs"),
                           ("local_area_marketing", "Local Area Marketing")]:
            inputs[key] = st.number_input(f"{label} ($)", 0.0, None, float(inputs[key]))
        inputs["inflation_rate"] = st.number_input("Inflation Rate (%)", 0.0, 50.0, float(inputs["inflation_rate"]))
        inputs["master_capex"] = st.number_input("Master Capex ($)", 0.0, None, float(inputs["master_capex"]))
        inputs["working_capital"] = st.number_input("Working Capital ($)", 0.0, None, float(inputs["working_capital"]))
        inputs["territory_dev_fee"] = st.number_input("Territory Development Fee ($)", 0.0, None, float(inputs["territory_dev_fee"]))
        inputs["event_revenue"] = st.number_input("Event Revenue ($)", 0.0, None, float(inputs["event_revenue"]))
        inputs["lead_conversion"] = st.number_input("Lead Conversion (%)", 0.0, 100.0, float(inputs["lead_conversion"]))

    if st.button("Reset to Defaults"):
        st.session_state["inputs"] = deepcopy(DEFAULT_INPUTS)
        st.rerun()
    st.success("Inputs auto-saved to session state.")

elif page == "Dashboard":
    res = run_projection(inputs, horizon)
    charts = res["charts"]
    st.markdown(f"<div class='header-box'><h1>Network Projection</h1><p>{horizon}-year {mode.split()[0].lower()} model</p></div>", unsafe_allow_html=True)

    kpi_cards(res["kpis"])
    if res["breakeven_year"] is None:
        st.warning(f"Cumulative profit does not break even within {horizon} years.")

    colA, colB = st.columns(2)
    with colA:
        sb = pd.DataFrame(charts["stacked_bar"])
        fig1 = go.Figure()
        for key, name in [("royalty", "Royalty"), ("fees", "Fees"), ("company", "Company Stores"), ("other", "Other")]:
            fig1.add_trace(go.Bar(x=sb["year"], y=sb[key], name=name, marker_color=COLORS[key]))
        fig1.update_layout(barmode="stack", **get_layout("Revenue Composition"))
        st.plotly_chart(fig1, use_container_width=True)
    with colB:
        dn = pd.DataFrame(charts["donut"])
        fig2 = go.Figure()
        if not dn.empty:
            fig2.add_trace(go.Pie(labels=dn["type"], values=dn["value"], hole=0.5))
        fig2.update_layout(**get_layout("Year 1 Revenue Mix"))
        st.plotly_chart(fig2, use_container_width=True)

    colC, colD = st.columns(2)
    with colC:
        ln = pd.DataFrame(charts["line"])
        fig3 = go.Figure()
        for key, name, color in [("total_revenue", "Revenue", COLORS["revenue"]), ("net_profit", "Net Profit", COLORS["profit"]),
                                 ("operating_costs", "Operating Costs", COLORS["costs"])]:
            fig3.add_trace(go.Scatter(x=ln["year"], y=ln[key], name=name, line=dict(color=color, width=3)))
        fig3.update_layout(**get_layout("Revenue, Profit & Costs"))
        st.plotly_chart(fig3, use_container_width=True)
    with colD:
        cf = pd.DataFrame(charts["cash_flow"])
        fig4 = go.Figure()
        fig4.add_trace(go.Bar(x=cf["year"], y=cf["inflows"], name="Inflows", marker_color=COLORS["revenue"]))
        fig4.add_trace(go.Bar(x=cf["year"], y=-cf["outflows"], name="Outflows", marker_color=COLORS["costs"]))
        fig4.add_trace(go.Scatter(x=cf["year"], y=cf["net"], name="Net", line=dict(color=COLORS["primary"], width=3)))
        fig4.update_layout(barmode="relative", **get_layout("Cash Flow"))
        st.plotly_chart(fig4, use_container_width=True)

    colE, colF = st.columns(2)
    with colE:
        st.plotly_chart(breakeven_figure(charts), use_container_width=True)
    with colF:
        sens = pd.DataFrame(charts["sensitivity"]).iloc[::-1]
        fig5 = go.Figure(go.Bar(x=sens["impact"], y=sens["variable"], orientation="h",
                                marker_color=[COLORS["profit"] if v > 0 else COLORS["danger"] for v in sens["impact"]]))
        fig5.update_layout(**get_layout("Sensitivity (Illustrative)"))
        fig5.update_layout(xaxis=dict(ticksuffix="%"))
        st.plotly_chart(fig5, use_container_width=True)

    with st.expander("Recomputed sensitivity (±10% on final-year net profit)"):
        td = tornado_sensitivity(inputs, horizon)
        st.dataframe(td.style.format({"net_profit": "${:,.0f}", "net_profit_change": "${:,.0f}", "abs_impact": "${:,.0f}"}),
                     use_container_width=True, hide_index=True)

    st.download_button("Download results (ZIP)", export_all_to_zip(res, inputs),
                       file_name="franchise_projection.zip", mime="application/zip")

elif page == "Scenarios":
    st.markdown("## Saved Scenarios")
    col_s1, col_s2 = st.columns([1, 2])
    with col_s1:
        st.subheader("Save Current Inputs")
        name = st.text_input("Scenario Name")
        if st.button("Save Scenario"):
            try:
                store.create(user_id, name, dict(inputs), run_projection(inputs, horizon)["records"])
                st.success(f"Scenario '{name}' saved.")
            except ScenarioStoreError as e:
                logger.error(f"Scenario save failed for user {user_id}: {e}")
                st.error(f"Error saving scenario: {e}")
    with col_s2:
        try:
            saved = store.list(user_id)
        except ScenarioStoreError as e:
            st.error(f"Error fetching scenarios: {e}")
            saved = []
        if not saved:
            st.info("No saved scenarios yet.")
        for s in saved:
            c1, c2, c3 = st.columns([3, 1, 1])
            c1.markdown(f"**{s['name']}**  \n<small>{s['updated_at'][:19].replace('T', ' ')}</small>", unsafe_allow_html=True)
            if c2.button("Load", key=f"load_{s['id']}"):
                loaded = apply_scenario_overrides(DEFAULT_INPUTS, s["inputs"])
                if not isinstance(loaded["dev_schedule"], str):
                    loaded["dev_schedule"] = ",".join(str(v) for v in loaded["dev_schedule"])
                st.session_state["inputs"] = loaded
                st.success(f"Loaded '{s['name']}'.")
            if c3.button("Delete", key=f"del_{s['id']}"):
                try:
                    store.delete(user_id, s["id"])
                    st.rerun()
                except ScenarioStoreError as e:
                    st.error(f"Error deleting scenario: {e}")

    st.subheader("Preset Scenarios")
    table = scenario_comparison_table(inputs, horizon_years=horizon)
    st.dataframe(table.style.format({
        "y1_revenue": "${:,.0f}", "final_revenue": "${:,.0f}", "y1_net_profit": "${:,.0f}",
        "final_net_profit": "${:,.0f}", "final_margin": "{:.1f}%", "cumulative_profit": "${:,.0f}",
        "final_roi": "{:.1f}%"}), use_container_width=True, hide_index=True)
    st.caption(" · ".join(v["label"] for v in SCENARIO_PRESETS.values()))

elif page == "Comparison":
    st.markdown("## Scenario Comparison")
    try:
        saved = store.list(user_id)
    except ScenarioStoreError as e:
        st.error(f"Error fetching scenarios: {e}")
        saved = []
    options = {"Current Inputs": inputs, **{s["name"]: s["inputs"] for s in saved}}
    c1, c2, c3 = st.columns(3)
    a_name = c1.selectbox("Scenario A", list(options.keys()), index=0)
    b_name = c2.selectbox("Scenario B", list(options.keys()), index=min(1, len(options) - 1))
    year = c3.number_input("Year", 1, horizon, 1)

    res_a = run_projection(options[a_name], horizon); res_b = run_projection(options[b_name], horizon)
    kpi_cards(summarize_kpis(res_a["records"], year), previous=summarize_kpis(res_b["records"], year))
    comp = compare_scenarios(res_a["records"], res_b["records"], year)
    st.dataframe(comp.drop(columns=["key"]).style.format({
        "scenario_a": "{:,.0f}", "scenario_b": "{:,.0f}", "difference": "{:+,.0f}", "pct_difference": "{:+.1f}%"}),
        use_container_width=True, hide_index=True)

    colA, colB = st.columns(2)
    with colA:
        st.plotly_chart(breakeven_figure(res_a["charts"], f"{a_name}"), use_container_width=True)
    with colB:
        st.plotly_chart(breakeven_figure(res_b["charts"], f"{b_name}"), use_container_width=True)

elif page == "Projection Table":
    st.markdown(f"## {horizon}-Year Projection")
    res = run_projection(inputs, horizon)
    st.dataframe(res["statement"].style.format(lambda v: "" if v is None or pd.isnull(v) else f"{v:,.0f}",
                                               subset=[c for c in res["statement"].columns if c != "Line Item"]),
                 use_container_width=True, hide_index=True)
    st.download_button("Download projection (CSV)", res["projection"].to_csv(index=False),
                       file_name="franchise_projection.csv", mime="text/csv")
