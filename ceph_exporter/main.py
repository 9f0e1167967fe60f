# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Command line entry point: serve Prometheus metrics for one or more Ceph clusters.
"""

import argparse
import getpass
import logging
import os
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ceph_exporter.config import TLS_VALIDATION_MODES, Settings
from ceph_exporter.connection import CephConnection, get_session
from ceph_exporter.errors import ConfigError
from ceph_exporter.exporter import COLLECTOR_MODES, CephExporter
from ceph_exporter.writer.prometheus_writer import PrometheusWriter

FORMAT = '%(asctime)s - %(levelname)s - %(funcName)s - %(lineno)d - %(message)s'
DATEFMT = '%Y-%m-%dT%H:%M:%SZ'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export Ceph cluster metrics to Prometheus")
    parser.add_argument('--config', type=str, default=None,
        help='Path to YAML exporter config. Overrides environment variables and .env; CLI flags override it.')
    parser.add_argument('--cluster', type=str, default=None,
        help='Value of the cluster label (default: ceph).')
    parser.add_argument('--cephConfig', type=str, default=None,
        help='Path to ceph.conf handed to radosgw-admin, rbd and ceph (default: /etc/ceph/ceph.conf).')
    parser.add_argument('--cephUser', type=str, default=None,
        help='Ceph user for the CLI tools, without the client. prefix (default: admin).')
    parser.add_argument('--api', nargs='+', default=None,
        help='ceph-mgr hosts running the restful module. Port 8003 is assumed when none is given.')
    parser.add_argument('--username', '-u', type=str, default=None,
        help='restful module user (default: the Ceph user).')
    parser.add_argument('--apiKey', type=str, default=None,
        help='restful module API key. If not provided, will prompt interactively.')
    parser.add_argument('--tlsCa', type=str, default=None,
        help='Path to CA certificate for verifying the restful module (if not in system trust store).')
    parser.add_argument('--tlsValidation', type=str, choices=list(TLS_VALIDATION_MODES), default=None,
        help='TLS validation mode for the restful module: strict (require valid CA and SKI/AKI), normal (default Python validation), none (disable all TLS validation, INSECURE, for testing only). Default: strict.')
    parser.add_argument('--rgwMode', type=int, choices=list(COLLECTOR_MODES), default=None,
        help='RGW collection: 0 disabled, 1 on every scrape, 2 in the background. Default: 0.')
    parser.add_argument('--mdsMode', type=int, choices=list(COLLECTOR_MODES), default=None,
        help='MDS collection: 0 disabled, 1 on every scrape, 2 in the background. Default: 0.')
    parser.add_argument('--telemetryAddr', type=str, default=None,
        help='Address for the metrics endpoint (default: 0.0.0.0).')
    parser.add_argument('--telemetryPort', type=int, default=None,
        help='Port for the metrics endpoint (default: 9128).')
    parser.add_argument('--tlsCertFile', type=str, default=None,
        help='Certificate for serving metrics over HTTPS. Requires --tlsKeyFile.')
    parser.add_argument('--tlsKeyFile', type=str, default=None,
        help='Private key for serving metrics over HTTPS. Requires --tlsCertFile.')
    parser.add_argument('--commandTimeout', type=float, default=None,
        help='Seconds allowed for one administrative command (default: 60).')
    parser.add_argument('--backgroundInterval', type=float, default=None,
        help='Seconds between two background RGW or MDS collections (default: 300).')
    parser.add_argument('--threads', type=int, default=None,
        help='Collectors run in parallel per cluster and scrape. Default: 4.')
    parser.add_argument('--logfile', type=str, default=None,
        help='Path to log file. If not provided, logs to console only.')
    parser.add_argument('--loglevel', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default='INFO',
        help='Log level for both console and file output. Default: INFO')
    return parser.parse_args(argv)


def configure_logging(logfile: Optional[str], loglevel: str) -> None:
    log_level = getattr(logging, loglevel.upper())

    if logfile:
        logfile_dir = os.path.dirname(logfile) if os.path.dirname(logfile) else '.'
        if os.path.exists(logfile_dir) and os.access(logfile_dir, os.W_OK):
            try:
                logging.basicConfig(filename=logfile, level=log_level,
                                    format=FORMAT, datefmt=DATEFMT)
                logging.info('Logging to file: ' + logfile)
            except OSError as e:
                logging.basicConfig(level=log_level, format=FORMAT, datefmt=DATEFMT)
                logging.error(f'Failed to configure file logging to {logfile}: {e}')
                logging.warning('Falling back to console logging only')
        else:
            logging.basicConfig(level=log_level, format=FORMAT, datefmt=DATEFMT)
            logging.error(f'Logfile directory {logfile_dir} does not exist or is not writable')
            logging.warning('Falling back to console logging only')
    else:
        logging.basicConfig(level=log_level, format=FORMAT, datefmt=DATEFMT)

    # Never allow requests/urllib3 to log below INFO level due to credential exposure
    requests_level = max(log_level, logging.INFO)
    logging.getLogger("requests").setLevel(level=requests_level)
    logging.getLogger("urllib3").setLevel(level=requests_level)


def load_settings(cmd: argparse.Namespace) -> Settings:
    """
    Resolve settings from the environment, the config file and the flags.

    Raises:
        ConfigError: On invalid values in any layer
    """
    try:
        settings = Settings(exporter_config=cmd.config)
    except ValidationError as e:
        raise ConfigError(f"invalid environment configuration: {e}") from e
    settings.apply_overrides(
        cluster_label=cmd.cluster,
        config_file=cmd.cephConfig,
        user=cmd.cephUser,
        api_endpoints=cmd.api,
        api_user=cmd.username,
        api_key=cmd.apiKey,
        tls_ca=cmd.tlsCa,
        tls_validation=cmd.tlsValidation,
        rgw_mode=cmd.rgwMode,
        mds_mode=cmd.mdsMode,
        telemetry_addr=cmd.telemetryAddr,
        telemetry_port=cmd.telemetryPort,
        tls_cert_file=cmd.tlsCertFile,
        tls_key_file=cmd.tlsKeyFile,
        command_timeout=cmd.commandTimeout,
        background_interval=cmd.backgroundInterval,
        threads=cmd.threads,
    )
    return settings


def build_exporters(settings: Settings) -> List[CephExporter]:
    """
    Connect to every configured cluster.

    Raises:
        ConfigError: If a cluster has no endpoint or none of its endpoints answers
    """
    LOG = logging.getLogger(__name__)
    exporters = []
    for cluster in settings.clusters:
        if not cluster.api_endpoints:
            raise ConfigError(f"cluster {cluster.cluster_label}: no restful endpoints configured")
        session, endpoint = get_session(cluster.api_user or cluster.user, cluster.api_key,
                                        cluster.api_endpoints, settings.tls_ca, settings.tls_validation,
                                        timeout=settings.command_timeout)
        if session is None:
            raise ConfigError(f"cluster {cluster.cluster_label}: unable to reach any restful endpoint")

        conn = CephConnection(session, endpoint, timeout=settings.command_timeout,
                              background_timeout=settings.background_timeout)
        exporters.append(CephExporter(
            conn, cluster.cluster_label, cluster.config_file, cluster.user,
            rgw_mode=settings.rgw_mode,
            mds_mode=settings.mds_mode,
            threads=settings.threads,
            background_interval=settings.background_interval,
        ))
        LOG.info(f"Exporting cluster {cluster.cluster_label} via {endpoint}")
    return exporters


def main(argv: Optional[List[str]] = None) -> None:
    CMD = parse_args(argv)
    configure_logging(CMD.logfile, CMD.loglevel)
    LOG = logging.getLogger(__name__)

    # Local runs keep credentials in .env next to the working directory
    load_dotenv()

    try:
        settings = load_settings(CMD)
    except ConfigError as e:
        LOG.error(f"Invalid configuration: {e}")
        sys.exit(1)

    # Prompt for the API key if needed
    if any(not cluster.api_key for cluster in settings.clusters) and sys.stdin.isatty():
        try:
            settings.api_key = getpass.getpass(f"Enter restful API key for user '{settings.api_user or settings.user}': ")
        except KeyboardInterrupt:
            print("\nAPI key input cancelled.")
            sys.exit(1)
        if not settings.api_key:
            print("Error: API key cannot be empty.")
            sys.exit(1)

    try:
        exporters = build_exporters(settings)
    except ConfigError as e:
        LOG.error(f"{e}")
        sys.exit(1)

    writer = PrometheusWriter(port=settings.telemetry_port, addr=settings.telemetry_addr,
                              certfile=settings.tls_cert_file, keyfile=settings.tls_key_file)
    for exporter in exporters:
        writer.register(exporter)

    try:
        writer.start()
    except Exception as e:
        LOG.error(f"Cannot serve metrics: {e}")
        for exporter in exporters:
            exporter.close()
        sys.exit(1)

    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        LOG.info("Interrupted by user. Exiting gracefully.")
    finally:
        writer.close()
        for exporter in exporters:
            exporter.close()
            exporter.conn.session.close()


if __name__ == "__main__":
    main()
