# -----------------------------------------------------------------------------
# Copyright (c) 2025 Ceph Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------
"""
Transport to the Ceph cluster.

Administrative commands go through the ceph-mgr ``restful`` module: the
command object (``{"prefix": ..., "format": ...}``) is posted to
``/request?wait=1`` and the module answers with the command output buffer.
Long running tools (radosgw-admin, rbd, ceph tell) run as subprocesses.
"""

import json
import logging
import random
import ssl
import subprocess
from typing import Dict, List, Optional, Tuple

import requests
import urllib3
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3 import PoolManager
from urllib3.util.ssl_ import create_urllib3_context

from ceph_exporter.errors import TransportError

LOG = logging.getLogger(__name__)
urllib3.disable_warnings()

DEFAULT_RESTFUL_PORT = 8003


class SSLAdapter(HTTPAdapter):
    """An HTTPS Transport Adapter that uses an explicit SSL context."""
    def __init__(self, verify_flags=ssl.VERIFY_X509_STRICT, **kwargs):
        self.verify_flags = verify_flags
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        context = create_urllib3_context(verify_flags=self.verify_flags)
        self.poolmanager = PoolManager(num_pools=connections, maxsize=maxsize,
                                       block=block, ssl_context=context, **pool_kwargs)


def normalize_endpoint(endpoint: str) -> str:
    """Add the https scheme and the restful module port when missing."""
    if not endpoint.startswith('http'):
        endpoint = f'https://{endpoint}'
    if ':' not in endpoint.split('//')[-1]:
        endpoint = f'{endpoint}:{DEFAULT_RESTFUL_PORT}'
    return endpoint.rstrip('/')


def build_session(username, api_key, tls_ca=None, tls_validation='strict') -> requests.Session:
    """
    Return a requests.Session configured for the restful module.

    Args:
        username: restful module user
        api_key: API key generated with ``ceph restful create-key``
        tls_ca: Optional CA bundle path
        tls_validation: 'strict', 'normal', or 'none'
    """
    session = requests.Session()
    if tls_validation == 'none':
        session.verify = False
        LOG.warning("TLS validation is DISABLED (verify=False). This is insecure and should only be used for testing.")
    else:
        verify_flags = ssl.VERIFY_X509_STRICT if tls_validation == 'strict' else ssl.VERIFY_DEFAULT
        session.mount("https://", SSLAdapter(verify_flags=verify_flags))
        if tls_ca:
            session.verify = tls_ca

    session.auth = HTTPBasicAuth(username, api_key)
    session.headers.update({
        "Accept": "application/json",
        "Content-Type": "application/json"
    })
    return session


def get_session(username, api_key, api_endpoints, tls_ca=None, tls_validation='strict', timeout=10):
    """
    Return a configured requests.Session and the first mgr endpoint that answers.
    Supports mgr failover by trying every endpoint.

    Args:
        api_endpoints: Single host string or list of mgr hosts
        tls_validation: 'strict', 'normal', or 'none'

    Returns:
        tuple: (session, active_endpoint), or (None, None) if no endpoint answers
    """
    if isinstance(api_endpoints, str):
        endpoints = [api_endpoints]
    else:
        endpoints = list(api_endpoints) if api_endpoints else []

    if not endpoints:
        LOG.error("No API endpoints provided")
        return None, None

    # Standby mgrs redirect or refuse, so order does not matter
    if len(endpoints) > 1:
        random.shuffle(endpoints)
        LOG.info(f"Multiple mgr endpoints configured. Trying endpoints in order: {endpoints}")

    session = build_session(username, api_key, tls_ca, tls_validation)
    last_exception = None

    for endpoint in endpoints:
        endpoint = normalize_endpoint(endpoint)
        LOG.info(f"Attempting connection to mgr: {endpoint}")
        try:
            resp = session.get(f"{endpoint}/server", timeout=timeout)
            if resp.status_code == 200:
                LOG.info(f"Successfully connected to mgr: {endpoint}")
                return session, endpoint
            elif resp.status_code in (401, 403):
                # Same key on every mgr, retrying elsewhere only risks a lockout
                LOG.error(f"Authentication failed for mgr {endpoint}: HTTP {resp.status_code}")
                return None, None
            else:
                LOG.warning(f"mgr {endpoint} returned HTTP {resp.status_code}")
        except requests.RequestException as e:
            LOG.warning(f"mgr {endpoint} failed: {e}")
            last_exception = e

    LOG.error(f"All mgr endpoints failed. Last error: {last_exception}")
    return None, None


class CephConnection:
    """Runs administrative commands and CLI tools against one cluster."""

    def __init__(self, session: Optional[requests.Session], endpoint: Optional[str],
                 timeout: float = 60.0, background_timeout: float = 60.0):
        """
        Args:
            session: Session returned by get_session
            endpoint: Active restful endpoint, e.g. https://mgr1:8003
            timeout: Seconds allowed for one administrative command
            background_timeout: Seconds allowed for one CLI subprocess
        """
        self.session = session
        self.endpoint = endpoint
        self.timeout = timeout
        self.background_timeout = background_timeout

    def run_admin_command(self, command: Dict) -> Tuple[bytes, str]:
        """
        Run one administrative command.

        Args:
            command: Command object, e.g. {"prefix": "status", "format": "json"}

        Returns:
            (output buffer, status string)

        Raises:
            TransportError: On connection errors, timeouts, HTTP errors, or
                when the cluster rejects the command
        """
        prefix = command.get('prefix', '?')
        if not self.session or not self.endpoint:
            raise TransportError("no session configured for admin commands", command=prefix)

        url = f"{self.endpoint}/request"
        LOG.debug(f"Running admin command: {prefix}")
        try:
            response = self.session.post(url, params={'wait': 1}, json=command, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.Timeout as e:
            raise TransportError(f"command {prefix!r} timed out after {self.timeout}s", command=prefix) from e
        except requests.RequestException as e:
            raise TransportError(f"command {prefix!r} failed: {e}", command=prefix) from e
        except ValueError as e:
            raise TransportError(f"command {prefix!r} returned a non-JSON response", command=prefix) from e

        if result.get('has_failed') or result.get('failed'):
            failed = result.get('failed') or [{}]
            raise TransportError(f"command {prefix!r} rejected: {failed[0].get('outs', '')}", command=prefix)

        finished = result.get('finished') or []
        if not finished:
            raise TransportError(f"command {prefix!r} did not finish (state {result.get('state')})", command=prefix)

        outb = finished[0].get('outb', '')
        if not isinstance(outb, str):
            outb = json.dumps(outb)
        return outb.encode(), finished[0].get('outs', '')

    def run_background_command(self, argv: List[str]) -> bytes:
        """
        Run a CLI tool and return its standard output.

        Raises:
            TransportError: On a missing binary, a non-zero exit or a timeout
        """
        LOG.debug(f"Running command: {' '.join(argv)}")
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                timeout=self.background_timeout,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError(f"{argv[0]} timed out after {self.background_timeout}s", command=argv[0]) from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b'').decode(errors='replace').strip()
            raise TransportError(f"{argv[0]} exited with {e.returncode}: {stderr}", command=argv[0]) from e
        except OSError as e:
            raise TransportError(f"{argv[0]} could not be run: {e}", command=argv[0]) from e
        return result.stdout
