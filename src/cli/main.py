"""CLI interface for the driver scenario engine."""
import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer

app = typer.Typer(help="Driver Scenario - driver-tree roll-up and lever what-if analysis")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def parse_lever_args(values: Optional[List[str]]) -> Dict[str, float]:
    """Parse repeated ``ID=PCT`` options into a lever-value mapping."""
    levers: Dict[str, float] = {}
    for raw in values or []:
        lever_id, sep, pct = raw.partition("=")
        if not sep or not lever_id.strip():
            raise typer.BadParameter(f"Expected ID=PCT, got '{raw}'")
        try:
            levers[lever_id.strip()] = float(pct.strip().rstrip("%"))
        except ValueError:
            raise typer.BadParameter(f"Lever value for '{lever_id}' is not a number: '{pct}'")
    return levers


def _open_session(input_file: str, config: Optional[str]):
    from ..config.models import load_engine_config
    from ..ingest.reader import read_dataset
    from ..simulation.session import ScenarioSession

    engine_config = load_engine_config(config)
    print(f"[1/2] Reading dataset: {input_file}")
    dataset = read_dataset(input_file)
    print(f"  → {len(dataset.fact_records)} fact records, {len(dataset.tree)} tree nodes")

    print(f"[2/2] Building baseline and elasticities...")
    session = ScenarioSession(dataset, engine_config)
    index = session.index
    print(f"  → {len(index.periods)} periods, {len(index.line_items)} P&L rows, "
          f"{len(index.elasticities)} elasticities")
    return session


def summary(input_file: str, config: Optional[str] = None):
    """Print the dataset's periods, P&L layout and lever impacts."""
    session = _open_session(input_file, config)
    index = session.index

    print(f"\nPeriods: {', '.join(index.periods) or '(none)'}")
    print("\nP&L line items:")
    for item in index.line_items:
        marker = "*" if item.is_total else " "
        print(f"  {marker} {'  ' * item.indent}{item.label} [{item.field_key}]")
    if not index.line_items:
        print("  (none: naming convention table missing or has no Financial Result rows)")

    print("\nLever impacts:")
    for lever in session.levers:
        fields = index.mapping.fields_for(lever.id)
        print(f"  {lever.id}: {', '.join(fields) if fields else '(no impacted fields)'}")

    print("\nDriver tree roots:")
    for root in index.dataset.tree.roots:
        print(f"  - {root.name} ({sum(1 for _ in root.walk())} nodes)")
    return session


def elasticities(input_file: str, config: Optional[str] = None):
    """Print the estimated elasticity table."""
    session = _open_session(input_file, config)
    table = session.index.elasticities
    print(f"\n{'Lever':<28}{'Field':<36}{'Elasticity':>12}{'n':>6}  Method")
    for entry in table.entries:
        print(f"{entry.lever_id:<28}{entry.field_key:<36}{entry.coefficient:>12.4f}"
              f"{entry.sample_size:>6}  {entry.method}")
    if not table.entries:
        print("  (no lever impacts declared)")
    return table


def _print_pnl(line_items, base, scen):
    for item in line_items:
        b, s = base.get(item.field_key, 0.0), scen.get(item.field_key, 0.0)
        print(f"  {'  ' * item.indent}{item.label:<32}{b:>14,.2f}{s:>14,.2f}{s - b:>+12,.2f}")
    print(f"  {'Margin':<32}{base.get('Margin', 0.0):>14,.2f}{scen.get('Margin', 0.0):>14,.2f}")
    print(f"  {'Margin %':<32}{base.get('MarginPct', 0.0):>14,.2f}{scen.get('MarginPct', 0.0):>14,.2f}")


def _print_tree_changes(tree, result, period):
    """Print driver-tree nodes whose amount moved in *period*."""
    changed = [n for n in tree.iter_nodes() if result.tree_delta(n.id, period) != 0]
    if not changed:
        return
    print("  Driver tree:")
    for node in changed:
        b = result.baseline_tree.get(node.id, {}).get(period, 0.0)
        s = result.tree.get(node.id, {}).get(period, 0.0)
        print(f"  {'  ' * max(node.level - 1, 0)}{node.name:<32}{b:>14,.2f}{s:>14,.2f}{s - b:>+12,.2f}")


def scenario(
    input_file: str,
    levers: Optional[List[str]] = None,
    periods: Optional[List[str]] = None,
    config: Optional[str] = None,
    out: Optional[str] = None,
):
    """Apply lever changes and print baseline vs. scenario per period."""
    from ..excel.writer import export_scenario_workbook

    lever_values = parse_lever_args(levers)
    session = _open_session(input_file, config)
    for lever_id, value in lever_values.items():
        try:
            stored = session.set_lever(lever_id, value)
        except KeyError:
            raise typer.BadParameter(f"Unknown lever '{lever_id}'")
        if stored != value:
            print(f"  ! {lever_id} clamped to {stored:g}%")
    session.select_periods(periods)
    result = session.recompute()

    for period in result.periods:
        print(f"\n== {period} ==")
        if period in result.pnl:
            _print_pnl(session.index.line_items, result.baseline_pnl.get(period, {}), result.pnl[period])
        _print_tree_changes(session.dataset.tree, result, period)

    for warning in result.warnings:
        print(f"  ! {warning}")

    if out:
        path = export_scenario_workbook(
            result,
            session.index.line_items,
            str(Path(out)),
            tree=session.dataset.tree,
            elasticities=session.index.elasticities,
        )
        print(f"\n✓ Scenario exported to {path}")
    return result


@app.command("summary")
def cli_summary(
    input_file: str = typer.Argument(..., help="Path to workbook (.xlsx) or stored dataset (.json)"),
    config: Optional[str] = typer.Option(None, help="Path to engine config YAML/JSON"),
):
    """Show periods, P&L layout and lever impacts."""
    summary(input_file, config)


@app.command("elasticities")
def cli_elasticities(
    input_file: str = typer.Argument(..., help="Path to workbook (.xlsx) or stored dataset (.json)"),
    config: Optional[str] = typer.Option(None, help="Path to engine config YAML/JSON"),
):
    """Show estimated lever elasticities."""
    elasticities(input_file, config)


@app.command("scenario")
def cli_scenario(
    input_file: str = typer.Argument(..., help="Path to workbook (.xlsx) or stored dataset (.json)"),
    lever: Optional[List[str]] = typer.Option(None, "--lever", help="Lever change as ID=PCT (repeatable)"),
    period: Optional[List[str]] = typer.Option(None, "--period", help="Period to include (repeatable)"),
    config: Optional[str] = typer.Option(None, help="Path to engine config YAML/JSON"),
    out: Optional[str] = typer.Option(None, "--out", help="Export scenario workbook to this path"),
):
    """Run a what-if scenario."""
    scenario(input_file, lever, period, config, out)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
