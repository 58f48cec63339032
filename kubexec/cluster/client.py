from kubernetes_asyncio import config
from loguru import logger
from tenacity import (
    after_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((config.ConfigException, OSError)),
    after=after_log(logger, "WARNING"),
    reraise=True,
)
async def load_k8s_config() -> None:
    """
    Load Kubernetes configuration (in-cluster or local kubeconfig) with retry logic.
    """
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        await config.load_kube_config()
        logger.info("Loaded Kubernetes configuration from kubeconfig file")
