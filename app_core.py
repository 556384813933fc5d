# app_core.py
# Serious Health-Related Suffering dashboard (Dash).
#
#   python app_core.py          # serves on SHS_HOST:SHS_PORT
#
# Needs ihme_data.duckdb (see prepare_ihme_dataset.py). Every visual is a
# query-layer call keyed on the session's settings; settings and the map
# selection live in session-scoped dcc.Stores.

import logging

from dash import Dash, dash_table, dcc, html, Input, Output, State, exceptions, ctx, no_update

import shs_settings as CFG
from cause_taxonomy import age_choices, condition_choices
from fact_store import FactStore, FilterError, QueryError
from figures import (bubble_figure, chart_subtitle, chart_title, failure_figure,
                     hierarchy_figure, historical_figure, map_figure, placeholder_figure,
                     ranking_figure, table_records)
from geo_reference import GeoReference
from queries import Filters, QueryLayer
from selection import (DashboardSettings, SelectionState, choose_condition, click,
                       default_settings, effective_locations, reset_selection, toggle_shs)

log = logging.getLogger(__name__)


# -----------------------------
# Helpers
# -----------------------------

def slider_marks(start, end, step=5):
    return {y: str(y) for y in range(start, end + 1, step)}


def _options(values):
    return [{"label": str(v), "value": v} for v in values]


def _radio(id_, choices, value):
    return dcc.RadioItems(
        id=id_,
        options=[{"label": label, "value": v} for label, v in choices],
        value=value,
        inline=True,
        inputStyle={"marginRight": "4px", "marginLeft": "10px"},
    )


def _card(title, control, graph_id):
    return html.Div(
        style={"background": "#fff", "padding": "8px", "border": "1px solid #eee"},
        children=[
            html.Div([html.H4(title, style={"margin": "0 12px 0 0"}), control],
                     style={"display": "flex", "alignItems": "center", "flexWrap": "wrap"}),
            dcc.Loading(dcc.Graph(id=graph_id, config={"displaylogo": False},
                                  style={"height": "45vh"})),
        ],
    )


def clicked_location(click_data):
    """Location name from a choropleth clickData payload."""
    if not click_data or not isinstance(click_data, dict):
        return None
    points = click_data.get("points") or []
    if not points:
        return None
    point = points[0]
    custom = point.get("customdata")
    if isinstance(custom, (list, tuple)) and len(custom) > 1 and custom[1]:
        return custom[1]
    return point.get("hovertext") or point.get("location")


def filters_for(settings):
    return Filters.from_selection(
        settings.health_condition,
        shs=settings.shs,
        sex=settings.sex,
        year=settings.year,
        age_group=settings.age_group,
        measure=settings.measure,
        metric=settings.metric,
    )


def render(build_data, build_figure):
    """
    Run one query and turn it into a figure.
    Empty results and store failures get different figures.
    """
    try:
        df = build_data()
    except FilterError as e:
        return placeholder_figure(f"Invalid selection: {e}")
    except QueryError as e:
        log.error("Query failed: %s", e)
        return failure_figure(e)
    return build_figure(df)


# -----------------------------
# App
# -----------------------------

def build_layout(store, defaults):
    measures = store.distinct_values("measure_name")
    sexes = store.distinct_values("sex_label")
    years = store.distinct_values("year_id")
    year_min, year_max = (min(years), max(years)) if years else (defaults.year, defaults.year)

    controls = html.Div(
        style={"background": "#F5F5F5", "padding": "12px", "display": "grid", "gap": "10px"},
        children=[
            html.H3("SHS World Map Settings", style={"margin": 0}),
            html.Div([
                html.Button("Reset to defaults", id="btn-reset", n_clicks=0),
                html.Button("Clear selection", id="btn-clear", n_clicks=0,
                            style={"marginLeft": "8px"}),
            ]),
            html.Label("Measure"),
            dcc.Dropdown(id="measure", options=_options(measures),
                         value=defaults.measure, clearable=False),
            dcc.Checklist(id="shs-toggle", options=[{"label": " Calculate SHS", "value": "shs"}],
                          value=["shs"] if defaults.shs else []),
            html.Label("Cause"),
            dcc.Dropdown(id="condition", options=_options(condition_choices(defaults.shs)),
                         value=defaults.health_condition, clearable=False),
            html.Label("Age"),
            dcc.Dropdown(id="age",
                         options=_options(age_choices(defaults.health_condition, defaults.shs)),
                         value=defaults.age_group, clearable=False),
            html.Label("Sex"),
            _radio("sex", [(s, s) for s in (sexes or ["Both"])], defaults.sex),
            html.Label("Year"),
            dcc.Slider(id="year", min=year_min, max=year_max, step=1, value=defaults.year,
                       marks=slider_marks(int(year_min), int(year_max),
                                          step=5 if (year_max - year_min) > 8 else 1) if years else {},
                       tooltip={"placement": "bottom", "always_visible": False}),
            html.Label("Color scale"),
            dcc.Dropdown(id="colorscale", options=_options(CFG.COLOR_SCALES),
                         value=defaults.color_scale, clearable=False),
            html.Small("Click a country to chart it; Shift+click to compare several."),
        ],
    )

    return html.Div(
        style={"fontFamily": "system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial",
               "padding": "16px", "margin": "0 auto"},
        children=[
            html.H2(CFG.APP_TITLE, style={"marginBottom": "8px"}),
            html.Div(
                style={"display": "grid", "gridTemplateColumns": "350px 1fr", "gap": "16px"},
                children=[
                    controls,
                    html.Div([
                        _card("SHS World Map",
                              _radio("map-scale", [("Linear", "linear"), ("Logarithmic", "log")],
                                     defaults.map_scale),
                              "world_map"),
                        html.Div(id="selected-locations",
                                 style={"fontSize": "12px", "color": "#555", "margin": "4px 0"}),
                        html.Div(
                            style={"display": "grid", "gridTemplateColumns": "1fr 1fr", "gap": "12px"},
                            children=[
                                _card("SHS Historical Chart",
                                      _radio("metric", [("per 100k", "Rate"), ("Absolute", "Number")],
                                             defaults.metric),
                                      "historical_chart"),
                                _card("SHS Country Ranking",
                                      _radio("order", [("Top 20", "top_20"), ("Bottom 20", "bottom_20")],
                                             defaults.order),
                                      "ranking_chart"),
                                _card("SHS Hierarchy",
                                      _radio("hierarchy-chart",
                                             [("Sunburst", "sunburst"), ("Treemap", "treemap")],
                                             defaults.hierarchy_chart),
                                      "hierarchy_chart"),
                                _card("SHS Circle Packing",
                                      _radio("breakdown",
                                             [(CFG.LABELS[d], d) for d in
                                              ("continent", "region_wb", "subregion", "income_group")],
                                             defaults.breakdown),
                                      "bubble_chart"),
                            ],
                        ),
                        html.H4(id="table-title"),
                        html.Div(id="table-subtitle", style={"color": "#555"}),
                        dash_table.DataTable(
                            id="shs-table",
                            columns=[{"name": "Country or territory", "id": "Country or territory"},
                                     {"name": "Value", "id": "Value"}],
                            page_size=10,
                            sort_action="native",
                        ),
                    ]),
                ],
            ),

            dcc.Store(id="settings", storage_type="session"),
            dcc.Store(id="selection", storage_type="session"),
            dcc.Store(id="shift-key", data=False),
            dcc.Store(id="geo-position"),
            dcc.Store(id="default-location", data=CFG.DEFAULT_LOCATION),
        ],
    )


def create_app(store, geo=None, queries=None):
    """Wire layout and callbacks around a FactStore (and optional GeoReference)."""
    queries = queries or QueryLayer(store)
    year_max = store.max_year()
    defaults = default_settings(year_max)

    app = Dash(__name__, title=CFG.APP_TITLE)
    app.layout = build_layout(store, defaults)

    def current(settings_data):
        return DashboardSettings.from_dict(settings_data) if settings_data else defaults

    # -----------------------------
    # Settings
    # -----------------------------
    @app.callback(
        Output("settings", "data"),
        Output("measure", "value"),
        Output("measure", "disabled"),
        Output("shs-toggle", "value"),
        Output("condition", "options"),
        Output("condition", "value"),
        Output("age", "options"),
        Output("age", "value"),
        Output("sex", "value"),
        Output("year", "value"),
        Output("map-scale", "value"),
        Output("colorscale", "value"),
        Output("metric", "value"),
        Output("order", "value"),
        Output("breakdown", "value"),
        Output("hierarchy-chart", "value"),
        Input("measure", "value"),
        Input("shs-toggle", "value"),
        Input("condition", "value"),
        Input("age", "value"),
        Input("sex", "value"),
        Input("year", "value"),
        Input("map-scale", "value"),
        Input("colorscale", "value"),
        Input("metric", "value"),
        Input("order", "value"),
        Input("breakdown", "value"),
        Input("hierarchy-chart", "value"),
        Input("btn-reset", "n_clicks"),
        State("settings", "data"),
    )
    def update_settings(measure, shs_opts, condition, age, sex, year, map_scale, colorscale,
                        metric, order, breakdown, hierarchy, _n_reset, settings_data):
        previous = current(settings_data)
        trigger = ctx.triggered_id

        if trigger == "btn-reset":
            s = default_settings(year_max)
        else:
            s = DashboardSettings(
                measure=measure or previous.measure,
                health_condition=condition or previous.health_condition,
                age_group=age or previous.age_group,
                sex=sex or previous.sex,
                year=year if year is not None else previous.year,
                color_scale=colorscale or previous.color_scale,
                map_scale=map_scale or previous.map_scale,
                shs=previous.shs,
                metric=metric or previous.metric,
                order=order or previous.order,
                breakdown=breakdown or previous.breakdown,
                hierarchy_chart=hierarchy or previous.hierarchy_chart,
            )
            shs_on = "shs" in (shs_opts or [])
            if shs_on != s.shs:
                s = toggle_shs(s, shs_on)
            elif trigger == "condition":
                s = choose_condition(s, s.health_condition)

        return (
            s.to_dict(),
            s.measure,
            s.shs,
            ["shs"] if s.shs else [],
            _options(condition_choices(s.shs)),
            s.health_condition,
            _options(age_choices(s.health_condition, s.shs)),
            s.age_group,
            s.sex,
            s.year,
            s.map_scale,
            s.color_scale,
            s.metric,
            s.order,
            s.breakdown,
            s.hierarchy_chart,
        )

    # -----------------------------
    # Selection (click / shift+click / clear)
    # -----------------------------
    @app.callback(
        Output("selection", "data"),
        Input("world_map", "clickData"),
        Input("btn-clear", "n_clicks"),
        State("shift-key", "data"),
        State("selection", "data"),
        prevent_initial_call=True,
    )
    def update_selection(click_data, _n_clear, shift, selection_data):
        state = SelectionState.from_dict(selection_data)
        if ctx.triggered_id == "btn-clear":
            new = reset_selection(state)
        else:
            new = click(state, clicked_location(click_data), shift=bool(shift))
        if new is state:
            raise exceptions.PreventUpdate
        return new.to_dict()

    @app.callback(
        Output("default-location", "data"),
        Input("geo-position", "data"),
        prevent_initial_call=True,
    )
    def locate_visitor(position):
        if geo is None or not position:
            raise exceptions.PreventUpdate
        name = geo.nearest_location(position.get("lat"), position.get("lon"))
        return name or no_update

    @app.callback(
        Output("selected-locations", "children"),
        Input("selection", "data"),
        Input("default-location", "data"),
    )
    def show_selection(selection_data, default_location):
        locs = effective_locations(SelectionState.from_dict(selection_data), default_location)
        return "Selected: " + ", ".join(locs) if locs else ""

    # -----------------------------
    # Visuals
    # -----------------------------
    @app.callback(Output("world_map", "figure"), Input("settings", "data"))
    def update_map(settings_data):
        s = current(settings_data)
        return render(lambda: queries.map_data(filters_for(s)),
                      lambda df: map_figure(df, geo, s))

    @app.callback(
        Output("historical_chart", "figure"),
        Input("settings", "data"),
        Input("selection", "data"),
        Input("default-location", "data"),
    )
    def update_historical(settings_data, selection_data, default_location):
        s = current(settings_data)
        locs = effective_locations(SelectionState.from_dict(selection_data), default_location)
        return render(lambda: queries.historical_data(filters_for(s), locs),
                      lambda df: historical_figure(df, s, locs))

    @app.callback(Output("ranking_chart", "figure"), Input("settings", "data"))
    def update_ranking(settings_data):
        s = current(settings_data)
        return render(lambda: queries.ranking_data(filters_for(s), s.order),
                      lambda df: ranking_figure(df, s))

    @app.callback(Output("hierarchy_chart", "figure"), Input("settings", "data"))
    def update_hierarchy(settings_data):
        s = current(settings_data)
        return render(lambda: queries.hierarchical_data(filters_for(s)),
                      lambda df: hierarchy_figure(df, s))

    @app.callback(Output("bubble_chart", "figure"), Input("settings", "data"))
    def update_bubble(settings_data):
        s = current(settings_data)
        return render(lambda: queries.breakdown_data(filters_for(s), s.breakdown),
                      lambda df: bubble_figure(df, s))

    @app.callback(
        Output("shs-table", "data"),
        Output("table-title", "children"),
        Output("table-subtitle", "children"),
        Input("settings", "data"),
    )
    def update_table(settings_data):
        s = current(settings_data)
        try:
            rows = table_records(queries.table_data(filters_for(s)))
            note = "" if rows else " (No data available)"
        except FilterError as e:
            rows, note = [], f" (Invalid selection: {e})"
        except QueryError as e:
            log.error("Table query failed: %s", e)
            rows, note = [], f" (Data store unavailable: {e})"
        return rows, chart_title(s), chart_subtitle(s) + note

    return app


# -----------------------------
# Run
# -----------------------------
def main():
    logging.basicConfig(level=CFG.LOG_LEVEL,
                        format="%(asctime)s | %(levelname)s | %(message)s",
                        datefmt="%H:%M:%S")
    store = FactStore.open(CFG.DB_PATH)
    try:
        geo = GeoReference.load(CFG.GEO_CACHE_PATH)
    except Exception as e:  # maps then join on country names
        log.warning("Geo reference unavailable (%s); falling back to country names", e)
        geo = None
    app = create_app(store, geo)
    log.info("Serving %s on %s:%s (latest year %s)", CFG.APP_TITLE, CFG.HOST, CFG.PORT,
             store.max_year())
    app.run(host=CFG.HOST, port=CFG.PORT, debug=CFG.DEBUG, dev_tools_hot_reload=False)


if __name__ == "__main__":
    main()
