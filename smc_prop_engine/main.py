"""
CLI entry point for the SMC prop engine.
Provides commands: backtest, scan, live, settings
"""
import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from smc_prop_engine.backtest.metrics import format_report
from smc_prop_engine.config import StrategyConfig, settings
from smc_prop_engine.core.candles import candles_from_frame
from smc_prop_engine.data.marketdata import MarketDataProvider
from smc_prop_engine.db.db import SettingsStore, init_db
from smc_prop_engine.orchestrator import Orchestrator, to_safe_json

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.INFO)
    log_file = Path(settings.log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )


def load_json_file(filepath: str) -> dict:
    """Load JSON configuration file."""
    try:
        with open(filepath, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"File not found: {filepath}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {filepath}: {e}")
        sys.exit(1)


def parse_date(value):
    return datetime.strptime(value, "%Y-%m-%d") if value else None


def load_config(args) -> StrategyConfig:
    """Stored settings, then a --params file, then explicit flags."""
    config = SettingsStore().load()
    if getattr(args, "params", None):
        merged = config.to_blob()
        merged.update(load_json_file(args.params))
        config = StrategyConfig.model_validate(merged)
    return config.with_overrides(
        strategy=getattr(args, "strategy", None),
        symbol=getattr(args, "symbol", None),
        timeframe=getattr(args, "timeframe", None),
        initial_equity=getattr(args, "initial_equity", None),
    )


def cmd_backtest(args):
    """Run backtest command."""
    logger.info("Starting backtest...")
    config = load_config(args)
    orchestrator = Orchestrator(config)

    report = orchestrator.run_backtest(
        start=parse_date(args.start),
        end=parse_date(args.end),
        source=args.data_source,
        csv_path=args.csv_path,
        htf_csv_path=args.htf_csv_path,
        use_risk_gates=args.risk_gates,
        mc_seed=args.seed,
    )

    logger.info("\n" + format_report(report.metrics, config.initial_equity))
    mc = report.monte_carlo
    if mc:
        logger.info(
            f"Monte Carlo ({mc.iterations} runs): median final ${mc.median_final:.2f}, "
            f"P10 ${mc.p10_final:.2f}, P90 ${mc.p90_final:.2f}, "
            f"risk of ruin {mc.risk_of_ruin:.1f}%, worst DD {mc.worst_drawdown:.1f}%"
        )

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(to_safe_json(report.to_dict()), f, indent=2)
        logger.info(f"Report written to {args.output}")

    return report


def cmd_scan(args):
    """Scan the latest candles once and print any signals."""
    config = load_config(args)
    orchestrator = Orchestrator(config)

    if args.csv_path:
        provider = MarketDataProvider(source="csv")
        candles = candles_from_frame(provider.get_data(config.symbol, config.timeframe, csv_path=args.csv_path))
        htf = None
        if args.htf_csv_path:
            htf = candles_from_frame(provider.get_data(config.symbol, config.htf_timeframe, csv_path=args.htf_csv_path))
        signals = orchestrator.scan(candles, htf, config.symbol)
        payload = [s.to_dict() for s in signals]
    else:
        snapshot = orchestrator.scan_symbol(config.symbol)
        signals = snapshot.signals
        payload = snapshot.to_dict()

    if not signals:
        logger.info("No setups on the latest candle")
    for signal in signals:
        logger.info(
            f"{signal.strategy} {signal.direction.upper()} | E:{signal.entry} SL:{signal.sl} "
            f"TP:{signal.tp} | {signal.rr}R | {signal.reasoning}"
        )
    print(json.dumps(to_safe_json(payload), indent=2))
    return signals


def cmd_live(args):
    """Poll Binance and alert on new setups until interrupted."""
    config = load_config(args)
    symbols = [s.strip().upper() for s in args.symbols.split(",")] if args.symbols else None
    orchestrator = Orchestrator(config)
    orchestrator.run_live(symbols=symbols, poll_interval=args.interval, max_cycles=args.cycles)


def cmd_settings(args):
    """Show, update or reset the stored strategy settings."""
    store = SettingsStore()
    if args.action == 'reset':
        config = store.reset()
    elif args.action == 'set':
        merged = store.load().to_blob()
        merged.update(load_json_file(args.file))
        config = StrategyConfig.model_validate(merged)
        store.save(config)
    else:
        config = store.load()
    print(json.dumps(config.to_blob(), indent=2))
    return config


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='SMC Prop Engine - Backtest, Scan and Live Alerts',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Backtest command
    backtest_parser = subparsers.add_parser('backtest', help='Run backtest')
    backtest_parser.add_argument('--strategy', choices=['all', 'S1', 'S2', 'S3'], help='Scanner selection')
    backtest_parser.add_argument('--symbol', help='Trading symbol (e.g., BTCUSDT)')
    backtest_parser.add_argument('--timeframe', help='Timeframe (e.g., 15m)')
    backtest_parser.add_argument('--start', help='Start date (YYYY-MM-DD)')
    backtest_parser.add_argument('--end', help='End date (YYYY-MM-DD)')
    backtest_parser.add_argument('--params', help='Path to parameters JSON file')
    backtest_parser.add_argument('--initial_equity', type=float, help='Initial equity')
    backtest_parser.add_argument('--data_source', default='csv', choices=['csv', 'binance'], help='Data source')
    backtest_parser.add_argument('--csv_path', help='Path to CSV file (if data_source=csv)')
    backtest_parser.add_argument('--htf_csv_path', help='Path to higher-timeframe CSV file')
    backtest_parser.add_argument('--risk_gates', action='store_true', help='Apply daily risk / drawdown gates')
    backtest_parser.add_argument('--seed', type=int, help='Monte Carlo seed')
    backtest_parser.add_argument('--output', help='Write the full report as JSON')

    # Scan command
    scan_parser = subparsers.add_parser('scan', help='Scan the latest candles once')
    scan_parser.add_argument('--symbol', help='Trading symbol')
    scan_parser.add_argument('--params', help='Path to parameters JSON file')
    scan_parser.add_argument('--csv_path', help='Scan a CSV file instead of fetching from Binance')
    scan_parser.add_argument('--htf_csv_path', help='Higher-timeframe CSV file')

    # Live command
    live_parser = subparsers.add_parser('live', help='Run live scanning with alerts')
    live_parser.add_argument('--symbols', help='Comma separated symbols (default: LIVE_SYMBOLS)')
    live_parser.add_argument('--params', help='Path to parameters JSON file')
    live_parser.add_argument('--interval', type=float, help='Seconds between scans')
    live_parser.add_argument('--cycles', type=int, help='Stop after this many scans')

    # Settings command
    settings_parser = subparsers.add_parser('settings', help='Show or change stored settings')
    settings_parser.add_argument('action', choices=['show', 'set', 'reset'], help='Settings action')
    settings_parser.add_argument('--file', help='JSON file of camelCase settings (for set)')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)
    if args.command == 'settings' and args.action == 'set' and not args.file:
        parser.error("settings set requires --file")

    # Setup logging
    setup_logging(args.verbose)

    # Initialize database
    init_db()

    # Execute command
    try:
        if args.command == 'backtest':
            cmd_backtest(args)
        elif args.command == 'scan':
            cmd_scan(args)
        elif args.command == 'live':
            cmd_live(args)
        elif args.command == 'settings':
            cmd_settings(args)
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Error executing {args.command}: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
