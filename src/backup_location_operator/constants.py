"""Constants for the Backup Location Operator."""

# API Group
API_GROUP = "oadp.openshift.io"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

VELERO_API_GROUP = "velero.io"
VELERO_API_VERSION = "v1"
VELERO_API_GROUP_VERSION = f"{VELERO_API_GROUP}/{VELERO_API_VERSION}"

# Resource Kinds
KIND_CLOUD_STORAGE = "CloudStorage"
KIND_DATA_PROTECTION_APPLICATION = "DataProtectionApplication"
KIND_BACKUP_STORAGE_LOCATION = "BackupStorageLocation"

PLURAL_CLOUD_STORAGE = "cloudstorages"
PLURAL_DATA_PROTECTION_APPLICATION = "dataprotectionapplications"
PLURAL_BACKUP_STORAGE_LOCATION = "backupstoragelocations"

# Labels
LABEL_APP_NAME = "app.kubernetes.io/name"
LABEL_APP_INSTANCE = "app.kubernetes.io/instance"
LABEL_APP_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_APP_COMPONENT = "app.kubernetes.io/component"
LABEL_OPERATOR = "openshift.io/oadp"
LABEL_REGISTRY = "openshift.io/oadp-registry"
LABEL_OWNER_NAME = f"{API_GROUP}/dpa-name"
LABEL_SECRET_TYPE = f"{API_GROUP}/secret-type"

LABEL_VALUE_VELERO = "velero"
LABEL_VALUE_BSL_APP = "oadp-operator-velero"
LABEL_VALUE_MANAGED_BY = "oadp-operator"
LABEL_VALUE_COMPONENT_BSL = "bsl"
LABEL_VALUE_COMPONENT_CA_BUNDLE = "ca-bundle"
LABEL_VALUE_STS_CREDENTIALS = "sts-credentials"

# Annotations
ANNOTATION_DELETE_BUCKET = f"{API_GROUP}/cloudstorage-delete"

# Finalizers
FINALIZER = f"{API_GROUP}/bucket-protection"

# Field Manager
FIELD_MANAGER = "backup-location-operator"
CONTROLLER_NAME = "backup-location-operator"

# Condition Types
COND_BUCKET_READY = "BucketReady"
COND_RECONCILED = "Reconciled"

# Condition Reasons
REASON_BUCKET_CREATED = "BucketCreated"
REASON_BUCKET_READY = "BucketReady"
REASON_BUCKET_CREATION_FAILED = "BucketCreationFailed"
REASON_BUCKET_DELETION_FAILED = "BucketDeletionFailed"
REASON_RECONCILE_COMPLETE = "Complete"
REASON_RECONCILE_ERROR = "Error"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_SUCCEEDED = "ValidateSucceeded"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_BUCKET_CREATED = "BucketCreated"
EVENT_REASON_BUCKET_DELETED = "BucketDeleted"
EVENT_REASON_BUCKET_RETAINED = "BucketRetained"
EVENT_REASON_ANNOTATION_PARSE_FAILED = "UnableToParseAnnotation"
EVENT_REASON_BSL_RECONCILED = "BackupStorageLocationReconciled"
EVENT_REASON_BSL_DELETED = "BackupStorageLocationDeleted"

# Credentials
DEFAULT_CREDENTIAL_SECRET = "cloud-credentials"
DEFAULT_CREDENTIAL_KEY = "cloud"
AWS_CREDENTIALS_KEY = "credentials"
GCP_SERVICE_ACCOUNT_KEY = "service_account.json"
AZURE_CLOUD_KEY = "cloud"
AZURE_KEY = "azurekey"
DEFAULT_AWS_PROFILE = "default"
DEFAULT_AZURE_TOKEN_FILE = "/var/run/secrets/openshift/serviceaccount/token"

# Feature flags
FEATURE_FLAG_NO_SECRET = "no-secret"

# CA bundle
CA_BUNDLE_CONFIG_MAP = "velero-ca-bundle"
CA_BUNDLE_FILE_NAME = "ca-bundle.pem"

# Provider defaults
DEFAULT_GCS_LOCATION = "us-central1"
AWS_GLOBAL_REGION = "us-east-1"
GCS_WORKER_COUNT = 10
GCS_DELETE_BATCH_SIZE = 100
