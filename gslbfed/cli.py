"""Command-line interface for gslbfed."""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional

from .logging_config import setup_logging, get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATHS = [Path("gslbfed.yaml"), Path("config.yaml"), Path("/etc/gslbfed/config.yaml")]


def load_config(config_path: Optional[str]):
    """Load and validate a federator configuration file.

    With no path, the default locations are tried and an empty
    configuration is returned when none exists.

    Raises:
        ConfigurationError: if the file is missing or invalid.
    """
    import yaml
    from pydantic import ValidationError
    from .exceptions import ConfigurationError
    from .models import FederatorConfig

    path = None
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
    else:
        for candidate in DEFAULT_CONFIG_PATHS:
            if candidate.exists():
                path = candidate
                break

    if path is None:
        logger.warning("No configuration file found, using defaults")
        return FederatorConfig()

    try:
        with open(path) as f:
            config_data = yaml.safe_load(f) or {}
        federator_config = FederatorConfig(**config_data)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e

    logger.info("Configuration loaded successfully",
                config_path=str(path),
                clusters_count=len(federator_config.clusters))
    return federator_config


def serve_command(args: argparse.Namespace) -> None:
    """Start the status API with the federator running in the background."""
    import uvicorn
    from .api import app, initialize_context
    from .exceptions import ConfigurationError
    from .logging_config import log_function_entry, log_function_exit

    setup_logging(args.verbose)
    log_function_entry(logger, "serve_command", host=args.host, port=args.port, config=args.config)

    try:
        federator_config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    initialize_context(federator_config, watch=not args.no_watch)

    logger.info("Starting gslbfed server", host=args.host, port=args.port)
    print(f"Starting gslbfed server on {args.host}:{args.port}")
    log_function_exit(logger, "serve_command", status="starting_server")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="info" if not args.verbose else "debug"
    )


def run_command(args: argparse.Namespace) -> None:
    """Run the federator without the API."""
    from .context import FederationContext
    from .exceptions import ConfigurationError

    setup_logging(args.verbose)
    try:
        federator_config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    async def run_federator():
        ctx = FederationContext(federator_config)
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        await ctx.run(stop_event)

    asyncio.run(run_federator())


def check_policy_command(args: argparse.Namespace) -> None:
    """Show the filter a policy document produces."""
    import yaml
    from pydantic import ValidationError
    from .filter import GlobalFilter
    from .models import GlobalDeploymentPolicy

    try:
        with open(args.policy) as f:
            gdp = GlobalDeploymentPolicy.model_validate(yaml.safe_load(f))
    except (OSError, yaml.YAMLError, ValidationError) as e:
        print(f"✗ Policy file {args.policy} is invalid: {e}", file=sys.stderr)
        sys.exit(1)

    global_filter = GlobalFilter()
    global_filter.add_to_filter(gdp)
    snapshot = global_filter.snapshot()
    if args.output == "json":
        print(json.dumps(snapshot.model_dump(), indent=2))
        return

    print(f"Policy {gdp.namespace}/{gdp.name}")
    print(f"  App selector: {snapshot.app_filter or 'None'}")
    print(f"  Namespace selector: {snapshot.ns_filter or 'None'}")
    print(f"  Clusters: {', '.join(snapshot.applicable_clusters) or 'None'}")
    for cluster, weight in snapshot.traffic_split.items():
        print(f"  Weight {cluster}: {weight}")
    print(f"  Checksum: {snapshot.checksum}")


def init_config_command(args: argparse.Namespace) -> None:
    """Generate a sample configuration file."""
    import yaml

    sample_config = {
        "clusters": [
            {
                "name": "cluster1-admin",
                "kubeconfig_path": "~/.kube/config",
                "context": "cluster1-admin",
                "enabled": True
            },
            {
                "name": "cluster2-admin",
                "kubeconfig_path": "~/.kube/config",
                "context": "cluster2-admin",
                "enabled": True
            }
        ],
        "gdp_namespace": "avi-system",
        "tenant": "admin",
        "workers": {"ingestion": 4, "graph": 4, "rest": 4, "retry": 1},
        "watch_timeout_seconds": 300,
        "enable_ingress": True,
        "enable_route": True,
        "enable_service": True
    }

    config_yaml = yaml.dump(sample_config, default_flow_style=False, sort_keys=False)

    if args.output:
        output_path = Path(args.output)
        output_path.write_text(config_yaml)
        print(f"Sample configuration written to {output_path}")
    else:
        print("Sample configuration:\n")
        print(config_yaml)


def validate_config_command(args: argparse.Namespace) -> None:
    """Validate a configuration file."""
    from .exceptions import ConfigurationError

    try:
        federator_config = load_config(args.config)
    except ConfigurationError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    print(f"✓ Configuration file {args.config} is valid")
    print("\nConfiguration summary:")
    print(f"  Clusters: {len(federator_config.clusters)}")
    print(f"  Policy namespace: {federator_config.gdp_namespace}")
    print(f"  Workers: {federator_config.workers.model_dump()}")

    if federator_config.clusters:
        print("\nConfigured clusters:")
        for cluster in federator_config.clusters:
            status = "enabled" if cluster.enabled else "disabled"
            print(f"  - {cluster.name} - {status}")


def version_command(args: argparse.Namespace) -> None:
    """Show version information."""
    from . import __version__
    print(f"gslbfed {__version__}")


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="gslbfed: Multi-cluster GSLB federation",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the federator and its status API")
    serve_parser.add_argument("--config", "-c", help="Configuration file path")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    serve_parser.add_argument("--no-watch", action="store_true", help="Don't watch member clusters")
    serve_parser.set_defaults(func=serve_command)

    run_parser = subparsers.add_parser("run", help="Run the federator without the API")
    run_parser.add_argument("--config", "-c", help="Configuration file path")
    run_parser.set_defaults(func=run_command)

    policy_parser = subparsers.add_parser("check-policy", help="Show the filter built from a policy file")
    policy_parser.add_argument("policy", help="GlobalDeploymentPolicy YAML file")
    policy_parser.add_argument(
        "--output", "-o",
        choices=["json", "text"],
        default="text",
        help="Output format (default: text)"
    )
    policy_parser.set_defaults(func=check_policy_command)

    init_parser = subparsers.add_parser("init-config", help="Generate a sample configuration file")
    init_parser.add_argument("--output", "-o", help="Output file path (default: stdout)")
    init_parser.set_defaults(func=init_config_command)

    validate_parser = subparsers.add_parser("validate-config", help="Validate a configuration file")
    validate_parser.add_argument("--config", "-c", required=True, help="Configuration file path")
    validate_parser.set_defaults(func=validate_config_command)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=version_command)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
