"""Shared constants for nativesubmit."""

# Owner of every object created for a submission
OWNER_API_VERSION = "sparkoperator.k8s.io/v1beta2"
OWNER_KIND = "SparkApplication"

# Operator labels stamped on driver/executor pods
LABEL_APP_NAME = "sparkoperator.k8s.io/app-name"
LABEL_LAUNCHED_BY_OPERATOR = "sparkoperator.k8s.io/launched-by-spark-operator"
LABEL_SUBMISSION_ID = "sparkoperator.k8s.io/submission-id"
LABEL_SPARK_APP_SELECTOR = "spark-app-selector"
LABEL_SPARK_ROLE = "spark-role"

# Driver container layout
DRIVER_CONTAINER_NAME = "spark-kubernetes-driver"
SPARK_CONF_DIR = "/opt/spark/conf"
SPARK_PROPERTIES_FILE = "spark.properties"
SPARK_ENV_FILE = "spark-env.sh"
SPARK_DEFAULTS_FILE = "/opt/spark/conf/spark-defaults.conf"
SPARK_CONF_VOLUME = "spark-conf-volume-driver"
SPARK_ENV_SCRIPT = "export SPARK_LOCAL_IP=$(hostname -i)\n"
HADOOP_CONF_DIR = "/opt/hadoop/conf"
HADOOP_CONF_VOLUME = "hadoop-properties"
HADOOP_TOKEN_VOLUME = "hadoop-secret"
HADOOP_CREDENTIALS_DIR = "/mnt/secrets/hadoop-credentials/"
KRB5_VOLUME = "krb5-file"
KRB5_FILE_PATH = "/etc/krb5.conf"
KRB5_FILE_NAME = "krb5.conf"
LOCAL_DIR_VOLUME_PREFIX = "spark-local-dir-"
SCRATCH_DIR_VOLUME_PREFIX = "spark-local-dirs-"
CONFIG_MAP_FILE_MODE = 420

# Ports
DRIVER_PORT_NAME = "driver-rpc-port"
BLOCK_MANAGER_PORT_NAME = "blockmanager"
UI_PORT_NAME = "spark-ui"
DEFAULT_DRIVER_PORT = 7078
DEFAULT_BLOCK_MANAGER_PORT = 7079
DEFAULT_UI_PORT = 4040

# Pod defaults
DEFAULT_DNS_POLICY = "ClusterFirst"
DEFAULT_RESTART_POLICY = "Never"
DEFAULT_IMAGE_PULL_POLICY = "IfNotPresent"
DEFAULT_SPARK_UID = 185
DEFAULT_SPARK_USER = "spark"
DEFAULT_TERMINATION_GRACE_SECONDS = 30
DEFAULT_TOLERATION_SECONDS = 300
TERMINATION_MESSAGE_PATH = "/dev/termination-log"
TERMINATION_MESSAGE_POLICY = "File"

# Memory
MIN_MEMORY_OVERHEAD_MIB = 384
JVM_MEMORY_OVERHEAD_FACTOR = "0.10"
NON_JVM_MEMORY_OVERHEAD_FACTOR = "0.40"
DEFAULT_DRIVER_MEMORY = "1024m"
DEFAULT_EXECUTOR_MEMORY = "1g"
DEFAULT_DRIVER_CORES = 1
DEFAULT_CPU_REQUEST = "1"
DEFAULT_MEMORY_QUANTITY = "1"

# Service
MAX_SERVICE_NAME_LENGTH = 63
DEFAULT_IP_FAMILY = "IPv4"

# Pod template fetch
DEFAULT_FETCH_TIMEOUT_SECONDS = 5.0

# Annotation whose value must be single-line in the properties document
PROMETHEUS_TARGETS_ANNOTATION = "opencensus.k8s-integration.com/prometheus-targets"

# =============================================================================
# Spark configuration keys
# =============================================================================

SPARK_APP_ID = "spark.app.id"
SPARK_APP_NAME = "spark.app.name"
SPARK_MASTER = "spark.master"
SPARK_DEPLOY_MODE = "spark.submit.deployMode"
SPARK_NAMESPACE = "spark.kubernetes.namespace"
SPARK_DRIVER_HOST = "spark.driver.host"
SPARK_DRIVER_POD_NAME = "spark.kubernetes.driver.pod.name"
SPARK_DRIVER_PORT = "spark.driver.port"
SPARK_DRIVER_BLOCK_MANAGER_PORT = "spark.driver.blockManager.port"
SPARK_BLOCK_MANAGER_PORT = "spark.blockManager.port"

SPARK_JARS = "spark.jars"
SPARK_FILES = "spark.files"
SPARK_PY_FILES = "spark.pyFiles"
SPARK_PACKAGES = "spark.packages"
SPARK_EXCLUDE_PACKAGES = "spark.excludePackages"
SPARK_REPOSITORIES = "spark.repositories"

SPARK_CONTAINER_IMAGE = "spark.kubernetes.container.image"
SPARK_DRIVER_CONTAINER_IMAGE = "spark.kubernetes.driver.container.image"
SPARK_EXECUTOR_CONTAINER_IMAGE = "spark.kubernetes.executor.container.image"
SPARK_IMAGE_PULL_POLICY = "spark.kubernetes.container.image.pullPolicy"
SPARK_IMAGE_PULL_SECRETS = "spark.kubernetes.container.image.pullSecrets"
SPARK_PYTHON_VERSION = "spark.kubernetes.pyspark.pythonVersion"

SPARK_MEMORY_OVERHEAD_FACTOR = "spark.kubernetes.memoryOverheadFactor"
SPARK_DRIVER_MEMORY_OVERHEAD_FACTOR = "spark.driver.memoryOverheadFactor"
SPARK_KUBERNETES_MEMORY_OVERHEAD = "spark.kubernetes.memoryOverhead"
SPARK_DRIVER_MEMORY = "spark.driver.memory"
SPARK_DRIVER_MEMORY_OVERHEAD = "spark.driver.memoryOverhead"
SPARK_EXECUTOR_MEMORY = "spark.executor.memory"
SPARK_EXECUTOR_MEMORY_OVERHEAD = "spark.executor.memoryOverhead"
SPARK_DRIVER_CORES = "spark.driver.cores"
SPARK_EXECUTOR_CORES = "spark.executor.cores"
SPARK_DRIVER_REQUEST_CORES = "spark.kubernetes.driver.request.cores"
SPARK_DRIVER_LIMIT_CORES = "spark.kubernetes.driver.limit.cores"
SPARK_EXECUTOR_REQUEST_CORES = "spark.kubernetes.executor.request.cores"
SPARK_EXECUTOR_LIMIT_CORES = "spark.kubernetes.executor.limit.cores"
SPARK_EXECUTOR_INSTANCES = "spark.executor.instances"
SPARK_EXECUTOR_DELETE_ON_TERMINATION = "spark.kubernetes.executor.deleteOnTermination"

SPARK_DRIVER_SERVICE_ACCOUNT = "spark.kubernetes.authenticate.driver.serviceAccountName"
SPARK_EXECUTOR_SERVICE_ACCOUNT = "spark.kubernetes.authenticate.executor.serviceAccountName"
SPARK_DRIVER_JAVA_OPTIONS = "spark.driver.extraJavaOptions"
SPARK_EXECUTOR_JAVA_OPTIONS = "spark.executor.extraJavaOptions"
SPARK_DRIVER_CLASS_PATH = "spark.driver.extraClassPath"
SPARK_EXECUTOR_CLASS_PATH = "spark.executor.extraClassPath"
SPARK_DRIVER_KUBERNETES_MASTER = "spark.kubernetes.driver.master"

SPARK_WAIT_APP_COMPLETION = "spark.kubernetes.submission.waitAppCompletion"
SPARK_SUBMIT_IN_DRIVER = "spark.kubernetes.submitInDriver"
SPARK_RESOURCE_TYPE = "spark.kubernetes.resource.type"
SPARK_SUBMIT_TIME = "spark.app.submitTime"
SPARK_UI_PROXY_BASE = "spark.ui.proxyBase"
SPARK_UI_PROXY_REDIRECT_URI = "spark.ui.proxyRedirectUri"
SPARK_METRICS_NAMESPACE = "spark.metrics.namespace"
SPARK_METRICS_CONF = "spark.metrics.conf"

SPARK_DYNAMIC_ALLOCATION_ENABLED = "spark.dynamicAllocation.enabled"
SPARK_DYNAMIC_ALLOCATION_SHUFFLE_TRACKING = "spark.dynamicAllocation.shuffleTracking.enabled"
SPARK_DYNAMIC_ALLOCATION_INITIAL = "spark.dynamicAllocation.initialExecutors"
SPARK_DYNAMIC_ALLOCATION_MIN = "spark.dynamicAllocation.minExecutors"
SPARK_DYNAMIC_ALLOCATION_MAX = "spark.dynamicAllocation.maxExecutors"
SPARK_DYNAMIC_ALLOCATION_TIMEOUT = "spark.dynamicAllocation.shuffleTracking.timeout"

SPARK_DRIVER_POD_TEMPLATE_FILE = "spark.kubernetes.driver.podTemplateFile"
SPARK_DRIVER_POD_TEMPLATE_CONTAINER = "spark.kubernetes.driver.podTemplateContainerName"
SPARK_FILES_FETCH_TIMEOUT = "spark.files.fetchTimeout"
SPARK_SCHEDULER_NAME = "spark.kubernetes.scheduler.name"
SPARK_DRIVER_SCHEDULER_NAME = "spark.kubernetes.driver.scheduler.name"
SPARK_DRIVER_SERVICE_IP_FAMILIES = "spark.kubernetes.driver.service.ipFamilies"
SPARK_KERBEROS_TOKEN_ITEM_KEY = "spark.kubernetes.kerberos.tokenSecret.itemKey"
SPARK_KERBEROS_KRB5_CONFIG_MAP = "spark.kubernetes.kerberos.krb5.configMapName"
SPARK_KERBEROS_TOKEN_SECRET_NAME = "spark.kubernetes.kerberos.tokenSecret.name"

# Prefixes
DRIVER_LABEL_PREFIX = "spark.kubernetes.driver.label."
EXECUTOR_LABEL_PREFIX = "spark.kubernetes.executor.label."
DRIVER_ANNOTATION_PREFIX = "spark.kubernetes.driver.annotation."
EXECUTOR_ANNOTATION_PREFIX = "spark.kubernetes.executor.annotation."
DRIVER_SECRET_KEY_REF_PREFIX = "spark.kubernetes.driver.secretKeyRef."
EXECUTOR_SECRET_KEY_REF_PREFIX = "spark.kubernetes.executor.secretKeyRef."
DRIVER_SERVICE_ANNOTATION_PREFIX = "spark.kubernetes.driver.service.annotation."
DRIVER_SERVICE_LABEL_PREFIX = "spark.kubernetes.driver.service.label."
DRIVER_SECRETS_PREFIX = "spark.kubernetes.driver.secrets."
EXECUTOR_SECRETS_PREFIX = "spark.kubernetes.executor.secrets."
DRIVER_ENV_PREFIX = "spark.kubernetes.driverEnv."
EXECUTOR_ENV_PREFIX = "spark.executorEnv."
NODE_SELECTOR_PREFIX = "spark.kubernetes.node.selector."
DRIVER_NODE_SELECTOR_PREFIX = "spark.kubernetes.driver.node.selector."
EXECUTOR_NODE_SELECTOR_PREFIX = "spark.kubernetes.executor.node.selector."
DRIVER_VOLUMES_PREFIX = "spark.kubernetes.driver.volumes."
EXECUTOR_VOLUMES_PREFIX = "spark.kubernetes.executor.volumes."
HADOOP_CONF_PREFIX = "spark.hadoop."
