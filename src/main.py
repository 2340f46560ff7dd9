"""
Boss Q-Learning Command Center - Offline Table Tools.

Inspect and export a saved boss Q-table without running the game.

Usage:
    python src/main.py inspect --table BossQTable.json --top 10
    python src/main.py export --table BossQTable.json --output policy.json
    python src/main.py config --config my_boss.json

Commands:
    inspect - Print table diagnostics and the most-visited states
    export  - Write the greedy policy (decoded state fields + best action) as JSON
    config  - Print the effective configuration (defaults or a JSON file)
"""

import argparse
import json
import logging
import os
import sys

# =============================================================================
# PATH SETUP - Ensure imports work from any directory
# =============================================================================

script_dir = os.path.dirname(os.path.abspath(__file__))
if os.path.basename(script_dir) == 'src':
    src_dir = script_dir
else:
    src_dir = os.path.join(script_dir, 'src')

if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

from actions import ActionCatalog  # noqa: E402
from ai.persistence import QTableStore  # noqa: E402
from ai.q_table import QTable  # noqa: E402
from ai.state_encoder import StateKeyError, parse_state_key  # noqa: E402
from models import ExecutorConfig, LearnerConfig, RewardConfig  # noqa: E402


# =============================================================================
# BANNER
# =============================================================================

BANNER = """
================================================================================

    BOSS Q-LEARNING - Offline Table Tools

================================================================================"""


# =============================================================================
# HELPERS
# =============================================================================

def load_config(path):
    """LearnerConfig from a JSON file, or the defaults when path is None."""
    if path is None:
        return LearnerConfig()
    with open(path, 'r', encoding='utf-8') as f:
        return LearnerConfig.model_validate_json(f.read())


def load_table(path):
    """Load a saved table. Returns (table, report)."""
    table = QTable()
    report = QTableStore(path).load(table)
    return table, report


def build_policy(table, catalog=None):
    """
    Greedy policy rows for export.

    Each row holds the decoded state fields, the argmax action (ties to the
    lowest index), its value, the full value vector and the visit count.
    Keys that do not parse are exported with empty fields.
    """
    catalog = catalog or ActionCatalog()
    rows = []
    for state, action, value in table.greedy_policy():
        try:
            fields = vars(parse_state_key(state)).copy()
        except StateKeyError:
            fields = {}
        rows.append({
            'state': state,
            'fields': fields,
            'action': action,
            'action_name': catalog.name_of(action),
            'category': catalog.category_of(action).value,
            'value': value,
            'values': [float(v) for v in table.ensure(state)],
            'visits': table.visit_count(state),
        })
    rows.sort(key=lambda r: r['state'])
    return rows


# =============================================================================
# INSPECT COMMAND
# =============================================================================

def cmd_inspect(args):
    """Print diagnostics for a saved table."""
    config = load_config(args.config)
    path = args.table or config.table_path
    table, report = load_table(path)
    catalog = ActionCatalog()

    print(BANNER)
    print(f"Table: {path}")
    if not report.found:
        print("  (no saved table found)")
        return 1
    if report.error:
        print(f"  (failed to load: {report.error})")
        return 1

    stats = table.stats()
    print("=" * 80)
    print("TABLE STATISTICS")
    print("=" * 80)
    print(f"  Episodes trained:  {report.episode_count if report.episode_count is not None else 'unknown'}")
    print(f"  Unique states:     {stats['unique_states']}")
    print(f"  Visited states:    {stats['visited_states']}")
    print(f"  Revisited states:  {stats['revisited_states']}")
    print(f"  Dropped on load:   {len(report.dropped_states)}")
    for threshold, count in stats['visit_thresholds'].items():
        print(f"  Visited > {threshold:<5}    {count}")
    print()

    counts = {}
    for _, action, _ in table.greedy_policy():
        category = catalog.category_of(action).value
        counts[category] = counts.get(category, 0) + 1
    print("=" * 80)
    print("GREEDY ACTION CATEGORIES")
    print("=" * 80)
    for category, count in sorted(counts.items(), key=lambda kv: -kv[1]):
        print(f"  {category:<10} {count}")
    print()

    top = sorted(table.visit_items(), key=lambda kv: -kv[1])[:args.top]
    print("=" * 80)
    print(f"TOP {len(top)} VISITED STATES")
    print("=" * 80)
    print(f"  {'State':<32} {'Visits':>8}  {'Best action':<34} {'Q':>9}")
    print("  " + "-" * 86)
    for state, visits in top:
        values = table.ensure(state)
        best = table.best_action(state, range(table.action_count))
        print(f"  {state:<32} {visits:>8}  {catalog.name_of(best):<34} {values[best]:>9.3f}")
    return 0


# =============================================================================
# EXPORT COMMAND
# =============================================================================

def cmd_export(args):
    """Write the greedy policy to JSON."""
    config = load_config(args.config)
    path = args.table or config.table_path
    table, report = load_table(path)
    if not report.ok:
        print(f"Cannot export: no usable table at '{path}'")
        return 1

    document = {
        'source': path,
        'episode_count': report.episode_count,
        'action_count': table.action_count,
        'policy': build_policy(table),
    }
    with open(args.output, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=2)
    print(f"Exported {len(document['policy'])} states to {args.output}")
    return 0


# =============================================================================
# CONFIG COMMAND
# =============================================================================

def cmd_config(args):
    """Print the effective configuration as JSON."""
    document = {
        'learner': load_config(args.config).model_dump(mode='json'),
        'rewards': RewardConfig().model_dump(mode='json'),
        'executor': ExecutorConfig().model_dump(mode='json'),
    }
    print(json.dumps(document, indent=2))
    return 0


# =============================================================================
# MAIN
# =============================================================================

def build_parser():
    parser = argparse.ArgumentParser(
        description='Boss Q-Learning Command Center - Offline Table Tools',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python src/main.py inspect --table BossQTable.json
  python src/main.py export --output policy.json
  python src/main.py config
        """
    )
    parser.add_argument(
        '--log-level', default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: WARNING)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # -------------------------------------------------------------------------
    # Inspect subcommand
    # -------------------------------------------------------------------------
    inspect_parser = subparsers.add_parser('inspect', help='Print table diagnostics')
    inspect_parser.add_argument('--table', type=str, default=None,
                                help='Path to the saved table (default: config table_path)')
    inspect_parser.add_argument('--config', type=str, default=None,
                                help='LearnerConfig JSON file')
    inspect_parser.add_argument('--top', type=int, default=10,
                                help='Number of most-visited states to list (default: 10)')
    inspect_parser.set_defaults(func=cmd_inspect)

    # -------------------------------------------------------------------------
    # Export subcommand
    # -------------------------------------------------------------------------
    export_parser = subparsers.add_parser('export', help='Write the greedy policy as JSON')
    export_parser.add_argument('--table', type=str, default=None,
                               help='Path to the saved table (default: config table_path)')
    export_parser.add_argument('--config', type=str, default=None,
                               help='LearnerConfig JSON file')
    export_parser.add_argument('--output', '-o', type=str, default='BossPolicy.json',
                               help='Output path (default: BossPolicy.json)')
    export_parser.set_defaults(func=cmd_export)

    # -------------------------------------------------------------------------
    # Config subcommand
    # -------------------------------------------------------------------------
    config_parser = subparsers.add_parser('config', help='Print the effective configuration')
    config_parser.add_argument('--config', type=str, default=None,
                               help='LearnerConfig JSON file to validate and print')
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level),
                        format='[%(levelname)s] %(message)s')

    if args.command is None:
        parser.print_help()
        print()
        print("Run 'python src/main.py <command> --help' for more info on a command.")
        return 0

    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
