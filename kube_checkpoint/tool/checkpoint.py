"""Command line tool for checkpointing the self-hosted API server on a node."""

import argparse
import asyncio
import logging
from pathlib import Path
import sys
import traceback

from kube_checkpoint.config import CheckpointConfig, read_config
from kube_checkpoint.exceptions import CheckpointException
from kube_checkpoint.observer import PodObserver
from kube_checkpoint.reconciler import Reconciler
from kube_checkpoint.secret import KubernetesSecretSource, SecretMaterializer
from kube_checkpoint.store import ManifestStore

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Keep a temporary API server available until the self-hosted one is running.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML file overriding the default paths, endpoints and interval.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconcile iteration and exit.",
    )
    return parser


async def run(config_path: Path | None, once: bool) -> None:
    """Build the reconciler from configuration and run it."""
    config = await read_config(config_path) if config_path else CheckpointConfig()
    source = KubernetesSecretSource.from_config(config.kubeconfig)
    materializer = SecretMaterializer(
        source, config.tls_dir, config.system_namespace, config.secret_volume_name
    )
    observer = PodObserver(config.kubelet_pods_url, config.fetch_timeout)
    try:
        reconciler = Reconciler(config, observer, materializer, ManifestStore())
        _LOGGER.info("Begin apiserver checkpointing")
        await reconciler.run(iterations=1 if once else None)
    finally:
        await observer.close()


def main() -> None:
    """kube-checkpoint command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(args.config, args.once))
    except CheckpointException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("kube-checkpoint error: ", err, file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted, exiting")


if __name__ == "__main__":
    main()
