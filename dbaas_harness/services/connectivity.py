"""
App connectivity check through a kubectl port-forward.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx

from dbaas_harness.config.logging import get_logger
from dbaas_harness.exceptions import ConfigurationError, ConnectivityError
from dbaas_harness.models.resources import VerificationWorkload

logger = get_logger(__name__)


async def get_app_response(
    workload: VerificationWorkload,
    local_port: int,
    namespace: Optional[str] = None,
    wait_seconds: float = 2.0,
    kubeconfig: Optional[str] = None,
    spawn: Callable[..., Awaitable[Any]] = asyncio.create_subprocess_exec,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """
    Forward ``local_port`` to the workload's container port and GET its root page.

    The port-forward process is stopped before returning.

    Raises:
        ConfigurationError: If the workload declares no container port
        ConnectivityError: If the port-forward cannot start or the request fails
    """
    operation = "get_app_response"
    target_port = workload.container_port
    if not target_port:
        raise ConfigurationError(f"pod {workload.name} declares no container port", operation=operation)

    cmd = ["kubectl", "port-forward", workload.name, f"{local_port}:{target_port}"]
    if namespace or workload.namespace:
        cmd += ["-n", namespace or workload.namespace]
    if kubeconfig:
        cmd += ["--kubeconfig", kubeconfig]

    logger.info("port_forward_starting", pod=workload.name, local_port=local_port, target_port=target_port)
    try:
        process = await spawn(*cmd, stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.DEVNULL)
    except OSError as e:
        logger.error(f"{operation}() failed! {e}", pod=workload.name)
        raise ConnectivityError(f"cannot start kubectl port-forward: {e}", operation=operation) from e

    try:
        await sleep(wait_seconds)
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.get(f"http://localhost:{local_port}/")
    except httpx.HTTPError as e:
        logger.error(f"{operation}() failed! {e}", pod=workload.name)
        raise ConnectivityError(f"GET through port {local_port} failed: {e}", operation=operation) from e
    finally:
        if process.returncode is None:
            process.terminate()
            await process.wait()

    logger.info("app_responded", pod=workload.name, status_code=response.status_code)
    return response
