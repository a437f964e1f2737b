import os
from kubernetes import client, config


class KubernetesHelper:
    @classmethod
    def load_api_client(cls) -> client.ApiClient:
        """
        Loads cluster credentials and returns an API client for the framework.

        In-cluster configuration is used when the service environment variables
        are present, the local kubeconfig otherwise.

        Raises:
            kubernetes.config.ConfigException: If no credentials can be found.
        """
        if 'KUBERNETES_SERVICE_HOST' in os.environ and 'KUBERNETES_SERVICE_PORT' in os.environ:
            config.load_incluster_config()
        else:
            config.load_kube_config()

        configuration = client.Configuration().get_default_copy()
        configuration.verify_ssl = False
        configuration.assert_hostname = False
        client.Configuration.set_default(configuration)

        return client.ApiClient()
