import argparse
import asyncio
import json
import logging
import sys

from colorama import init, Fore, Style

from config import NANSEN_API_KEY, NANSEN_BASE_URL, SIGNAL_LOG_PATH, RATE_LIMIT_PRESET, LOG_LEVEL
from trader_config import get_trader_config
from signal_intel import (
    ConfigurationError,
    NansenAPI,
    RateLimiter,
    Recommendation,
    ResponseCache,
    RiskConfig,
    RiskEngine,
    ScanMode,
    ScanOrchestrator,
    SignalStore,
)

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("SmartMoney")

init(autoreset=True)

RECOMMENDATION_COLORS = {
    Recommendation.STRONG_BUY: Fore.GREEN,
    Recommendation.BUY: Fore.GREEN,
    Recommendation.WATCH: Fore.YELLOW,
    Recommendation.AVOID: Fore.RED,
}


def build_store(trader_config: dict) -> SignalStore:
    store_config = dict(trader_config['signal_log'])
    store_config['path'] = SIGNAL_LOG_PATH or store_config.get('path')
    return SignalStore(store_config)


def build_orchestrator(trader_config: dict, preset: str = None) -> ScanOrchestrator:
    """Wire source, cache, limiter, store and risk engine together."""
    source = NansenAPI(NANSEN_API_KEY, {'base_url': NANSEN_BASE_URL})
    preset = preset or RATE_LIMIT_PRESET or trader_config['rate_limit']['preset']

    return ScanOrchestrator(
        source=source,
        cache=ResponseCache(trader_config['cache']),
        rate_limiter=RateLimiter.from_preset(preset),
        store=build_store(trader_config),
        risk_engine=RiskEngine(),
        risk_config=RiskConfig.from_dict(trader_config['risk']),
        config=trader_config['scan'],
    )


def print_signal(signal):
    color = RECOMMENDATION_COLORS.get(signal.recommendation, Fore.WHITE)
    print(f"{Fore.CYAN}{'='*50}")
    print(f"{color}[{signal.recommendation.value.upper()}] {Fore.WHITE}{signal.symbol or signal.token} on {signal.chain.upper()}")
    print(f"{Fore.YELLOW}Token: {Fore.WHITE}{signal.token}")
    print(f"{Fore.YELLOW}Mode: {Fore.WHITE}{signal.mode.value}")
    print(f"{Fore.YELLOW}Score: {Fore.WHITE}{signal.score:.2f}  {Fore.YELLOW}Risk: {Fore.WHITE}{signal.risk_score}  "
          f"{Fore.YELLOW}Confidence: {Fore.WHITE}{signal.confidence:.0%}")
    print(f"{Fore.YELLOW}Reason: {Fore.WHITE}{signal.reason}")
    if signal.risk_factors:
        print(f"{Fore.YELLOW}Factors: {Fore.WHITE}{', '.join(signal.risk_factors)}")
    if signal.suggested_action:
        action = signal.suggested_action
        print(f"{Fore.GREEN}Suggested: {action.action} ({action.urgency} urgency, {action.position_size_hint} size)")
    if signal.analysis:
        if 'error' in signal.analysis:
            print(f"{Fore.RED}Analysis failed: {signal.analysis['error']}")
        else:
            print(f"{Fore.YELLOW}7d net volume: {Fore.WHITE}${signal.analysis.get('net_volume_usd', 0):,.0f}")
    print(f"{Style.DIM}id: {signal.id}")


def print_scan_errors(orchestrator: ScanOrchestrator):
    for error in orchestrator.last_errors:
        print(f"{Fore.YELLOW}⚠️  {error}")


async def cmd_scan(args, trader_config):
    orchestrator = build_orchestrator(trader_config, args.preset)
    try:
        signals = await orchestrator.scan(
            chains=args.chains,
            modes=args.modes,
            limit=args.limit,
            analyze=args.analyze,
        )
    finally:
        await orchestrator.close()

    print_scan_errors(orchestrator)

    if args.json:
        print(json.dumps([s.to_dict() for s in signals], indent=2))
        return

    if not signals:
        print(f"{Fore.YELLOW}No signals passed the risk filters.")
        return

    print(f"{Fore.GREEN}🧠 {len(signals)} signals")
    for signal in signals:
        print_signal(signal)


async def cmd_monitor(args, trader_config):
    orchestrator = build_orchestrator(trader_config, args.preset)
    interval = args.interval or trader_config['monitor']['interval_seconds']

    print(f"{Fore.GREEN}📡 Monitoring smart money every {interval}s (Ctrl+C to stop)")

    def on_signal(signal):
        print_signal(signal)

    handle = orchestrator.monitor(on_signal, interval_seconds=interval, chains=args.chains, modes=args.modes)
    try:
        await handle.wait()
    finally:
        handle.stop()
        await orchestrator.close()


def cmd_signals(args, trader_config):
    store = build_store(trader_config)
    signals = store.find(chains=args.chains, limit=args.limit)

    if args.json:
        print(json.dumps([s.to_dict() for s in signals], indent=2))
        return

    if not signals:
        print(f"{Fore.YELLOW}No signals logged yet.")
        return

    for s in signals:
        status = f"{Fore.GREEN}acted" if s.acted else f"{Fore.WHITE}open"
        pnl = ""
        if s.has_pnl:
            pnl_color = Fore.GREEN if s.outcome.pnl > 0 else Fore.RED
            pnl = f" {pnl_color}{s.outcome.pnl_percent:+.1f}%"
        print(f"{Fore.CYAN}{s.logged_at[:19]} {Fore.WHITE}{s.chain:<10} {s.symbol:<10} "
              f"{s.mode.value:<13} {s.score:5.2f} {status}{pnl}")
        print(f"{Style.DIM}  {s.id}")


def cmd_stats(args, trader_config):
    store = build_store(trader_config)
    stats = store.get_stats()

    print(f"{Fore.CYAN}📊 Signal performance")
    print(f"{Fore.YELLOW}Total signals: {Fore.WHITE}{stats['total_signals']}")
    print(f"{Fore.YELLOW}Acted on: {Fore.WHITE}{stats['acted_on']}  {Fore.YELLOW}Skipped: {Fore.WHITE}{stats['skipped']}")
    print(f"{Fore.YELLOW}With outcome: {Fore.WHITE}{stats['with_outcome']}  "
          f"{Fore.YELLOW}Win rate: {Fore.WHITE}{stats['win_rate']:.0%}")
    print(f"{Fore.YELLOW}Total PnL: {Fore.WHITE}{stats['total_pnl']:.4f}  "
          f"{Fore.YELLOW}Avg PnL: {Fore.WHITE}{stats['avg_pnl_percent']:+.2f}%")
    print(f"{Fore.YELLOW}Avg score: {Fore.WHITE}{stats['avg_score']:.2f}")
    for chain, count in sorted(stats['by_chain'].items()):
        print(f"  {chain}: {count}")


def cmd_act(args, trader_config):
    store = build_store(trader_config)
    signal = store.mark_acted(args.id, args.action, args.notes)
    if signal is None:
        print(f"{Fore.RED}❌ Signal not found or invalid action: {args.id}")
        return 1
    print(f"{Fore.GREEN}✅ Marked {signal.id} as {args.action}")
    return 0


def cmd_outcome(args, trader_config):
    store = build_store(trader_config)
    signal = store.record_outcome(
        args.id,
        entry_price=args.entry,
        exit_price=args.exit,
        action=args.action,
        notes=args.notes,
    )
    if signal is None:
        print(f"{Fore.RED}❌ Signal not found: {args.id}")
        return 1

    outcome = signal.outcome
    if outcome.pnl is not None:
        color = Fore.GREEN if outcome.pnl > 0 else Fore.RED
        print(f"{Fore.GREEN}✅ Outcome recorded: {color}{outcome.pnl:+.6f} ({outcome.pnl_percent:+.2f}%)")
    else:
        print(f"{Fore.GREEN}✅ Outcome recorded")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Smart Money Signal Intelligence")
    sub = parser.add_subparsers(dest="command", required=True)

    modes = [m.value for m in ScanMode]

    scan = sub.add_parser("scan", help="Scan chains for smart money signals")
    scan.add_argument("--chains", nargs='+', help="Chains to scan (default: ethereum base arbitrum)")
    scan.add_argument("--modes", nargs='+', choices=modes, help="Scan modes (default: accumulation)")
    scan.add_argument("--limit", type=int, help="Max signals to return")
    scan.add_argument("--analyze", action="store_true", help="Deep-analyze the top signals (extra credits)")
    scan.add_argument("--preset", help="Rate limit preset")
    scan.add_argument("--json", action="store_true", help="Print signals as JSON")

    monitor = sub.add_parser("monitor", help="Scan periodically and print new signals")
    monitor.add_argument("--chains", nargs='+')
    monitor.add_argument("--modes", nargs='+', choices=modes)
    monitor.add_argument("--interval", type=float, help="Seconds between scans")
    monitor.add_argument("--preset", help="Rate limit preset")

    signals = sub.add_parser("signals", help="Show logged signals")
    signals.add_argument("--chains", nargs='+')
    signals.add_argument("--limit", type=int, default=20)
    signals.add_argument("--json", action="store_true")

    sub.add_parser("stats", help="Signal performance summary")

    act = sub.add_parser("act", help="Mark a signal as acted upon")
    act.add_argument("id")
    act.add_argument("action", choices=['buy', 'sell', 'skip'])
    act.add_argument("--notes")

    outcome = sub.add_parser("outcome", help="Record the result of a trade")
    outcome.add_argument("id")
    outcome.add_argument("--entry", type=float, required=True, help="Entry price")
    outcome.add_argument("--exit", type=float, required=True, help="Exit price")
    outcome.add_argument("--action", choices=['buy', 'sell', 'skip'], help="What was done (kept unset if omitted)")
    outcome.add_argument("--notes")

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    trader_config = get_trader_config()

    try:
        if args.command == "scan":
            asyncio.run(cmd_scan(args, trader_config))
        elif args.command == "monitor":
            asyncio.run(cmd_monitor(args, trader_config))
        elif args.command == "signals":
            cmd_signals(args, trader_config)
        elif args.command == "stats":
            cmd_stats(args, trader_config)
        elif args.command == "act":
            return cmd_act(args, trader_config)
        elif args.command == "outcome":
            return cmd_outcome(args, trader_config)
    except ConfigurationError as e:
        print(f"{Fore.RED}❌ Configuration error: {e}")
        return 2
    except KeyboardInterrupt:
        print(f"\n{Fore.YELLOW}Monitoring stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
