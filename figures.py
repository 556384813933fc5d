# figures.py
# Plotly figures for the query layer results.

import numpy as np
import plotly.express as px
import plotly.graph_objects as go

import shs_settings as CFG

NO_DATA_TEXT = "No data available"
FAILURE_PREFIX = "Data store unavailable"


# -----------------------------
# Helpers
# -----------------------------

def safe_log10(x):
    """Log10 for scalars or arrays. Nonpositive -> NaN. No runtime warnings."""
    if np.isscalar(x):
        x = float(x)
        return np.log10(x) if x > 0 else np.nan
    x = np.asarray(x, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(x > 0, np.log10(x), np.nan)


def make_log_ticks(vmin, vmax):
    """
    Given positive min/max in linear space, return (tickvals_log10, ticktext)
    for whole decades covering [vmin, vmax].
    """
    try:
        vmin = float(vmin); vmax = float(vmax)
    except (TypeError, ValueError):
        return [], []

    if not np.isfinite(vmin) or not np.isfinite(vmax):
        return [], []
    if vmin <= 0 or vmax <= 0 or vmin >= vmax:
        return [], []

    pmin = int(np.floor(np.log10(vmin)))
    pmax = int(np.ceil(np.log10(vmax)))

    vals = (10.0 ** np.arange(pmin, pmax + 1)).astype(float)
    tickvals = np.log10(vals)
    ticktext = [f"{int(v):,}" if v >= 1 else f"{v:.3g}" for v in vals]
    return tickvals.tolist(), ticktext


def _message_figure(msg, color="#555"):
    fig = go.Figure()
    fig.add_annotation(text=msg, showarrow=False, x=0.5, y=0.5,
                       xref="paper", yref="paper", font=dict(color=color))
    fig.update_layout(xaxis=dict(visible=False), yaxis=dict(visible=False),
                      margin=dict(l=20, r=20, t=30, b=20))
    return fig


def placeholder_figure(msg=NO_DATA_TEXT):
    """Shown when a query legitimately matched no rows."""
    return _message_figure(msg)


def failure_figure(error):
    """Shown when the store failed; must not look like an empty result."""
    return _message_figure(f"⚠️ {FAILURE_PREFIX}: {error}", color="#b00020")


def chart_title(settings):
    what = "SHS" if settings.shs else settings.measure
    return f"{what}: {settings.health_condition}"


def chart_subtitle(settings, with_year=True):
    parts = [f"Age: {settings.age_group}", f"Sex: {settings.sex}"]
    if with_year:
        parts.append(f"Year: {settings.year}")
    return ", ".join(parts)


def _titled(fig, settings, with_year=True):
    fig.update_layout(
        title=dict(text=f"{chart_title(settings)}<br><sup>{chart_subtitle(settings, with_year)}</sup>"),
        margin=dict(l=40, r=20, t=70, b=40),
    )
    return fig


def axis_title(metric):
    return CFG.LABELS.get(metric, metric)


def historical_chart_type(locations):
    return "line" if len(locations) > 1 else "column"


# -----------------------------
# Visuals
# -----------------------------

def map_figure(df, geo, settings):
    """Choropleth of per-location values; hover always shows the real value."""
    if df is None or df.empty:
        return placeholder_figure()
    d = geo.with_iso3(df) if geo is not None else df.assign(iso3=np.nan)
    use_log = settings.map_scale == "log"
    d["plot_value"] = safe_log10(d["value"]) if use_log else d["value"]

    if d["iso3"].notna().any():
        d = d.dropna(subset=["iso3"])
        fig = px.choropleth(d, locations="iso3", color="plot_value",
                            hover_name="location_name",
                            color_continuous_scale=settings.color_scale or CFG.DEFAULT_COLOR_SCALE,
                            projection=CFG.MAP_PROJECTION)
    else:
        fig = px.choropleth(d, locations="location_name", locationmode="country names",
                            color="plot_value", hover_name="location_name",
                            color_continuous_scale=settings.color_scale or CFG.DEFAULT_COLOR_SCALE,
                            projection=CFG.MAP_PROJECTION)

    what = "SHS" if settings.shs else settings.measure
    fig.update_traces(
        customdata=np.c_[d["value"].to_numpy(), d["location_name"].to_numpy()],
        hovertemplate=f"%{{hovertext}}<br>{what}: %{{customdata[0]:,.3f}}<extra></extra>",
    )
    if use_log:
        pos = d["value"].where(d["value"] > 0).dropna()
        if not pos.empty:
            tickvals, ticktext = make_log_ticks(pos.min(), pos.max())
            if tickvals and ticktext:
                fig.update_layout(coloraxis_colorbar=dict(tickvals=tickvals, ticktext=ticktext))
    fig.update_layout(coloraxis_colorbar=dict(title=what), clickmode="event")
    return _titled(fig, settings)


def historical_figure(df, settings, locations):
    if df is None or df.empty:
        return placeholder_figure()
    df = df.sort_values(["location_name", "year"])
    fig = go.Figure()
    line = historical_chart_type(locations) == "line"
    for name, g in df.groupby("location_name", sort=False):
        x = g["year"].astype(str)
        if line:
            fig.add_trace(go.Scatter(x=x, y=g["value"], mode="lines+markers", name=name))
        else:
            fig.add_trace(go.Bar(x=x, y=g["value"], name=name))
    fig.update_layout(xaxis_title="Year", yaxis_title=axis_title(settings.metric),
                      hovermode="x unified", showlegend=True)
    fig.update_xaxes(type="category")
    return _titled(fig, settings, with_year=False)


def ranking_figure(df, settings):
    if df is None or df.empty:
        return placeholder_figure()
    fig = go.Figure(go.Bar(
        x=df["value"], y=df["location_name"], orientation="h",
        hovertemplate="%{y}: %{x:,.3f}<extra></extra>",
    ))
    fig.update_layout(xaxis_title=axis_title(settings.metric),
                      yaxis_title="Country or territory",
                      yaxis=dict(autorange="reversed"), showlegend=False)
    return _titled(fig, settings)


def hierarchy_figure(df, settings):
    if df is None or df.empty:
        return placeholder_figure()
    d = df.fillna({"continent": "Unknown", "subregion": "Unknown"})
    d = d[d["value"] > 0]
    if d.empty:
        return placeholder_figure()
    path = ["continent", "subregion", "location_name"]
    if settings.hierarchy_chart == "treemap":
        fig = px.treemap(d, path=path, values="value")
    else:
        fig = px.sunburst(d, path=path, values="value", maxdepth=2)
    fig.update_traces(hovertemplate="%{label}: %{value:,.0f}<extra></extra>")
    return _titled(fig, settings)


def bubble_figure(df, settings):
    if df is None or df.empty:
        return placeholder_figure()
    d = df.fillna({"breakdown_value": "Unknown"})
    order = None
    if settings.breakdown == "income_group":
        order = {"breakdown_value": [g for g in CFG.INCOME_ORDER if g in set(d["breakdown_value"])]}
    fig = px.scatter(d, x="breakdown_value", y="value", size=d["value"].clip(lower=0),
                     color="breakdown_value", hover_name="location_name",
                     category_orders=order, size_max=60)
    fig.update_layout(xaxis_title=CFG.LABELS.get(settings.breakdown, settings.breakdown),
                      yaxis_title=axis_title("Number"), legend_title_text="")
    return _titled(fig, settings)


def table_records(df):
    """Rows for the dash_table.DataTable."""
    if df is None or df.empty:
        return []
    return df.rename(columns={"location_name": "Country or territory", "value": "Value"}).to_dict("records")
