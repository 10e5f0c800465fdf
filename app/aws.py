import boto3
from botocore.config import Config
from .config import settings

_session = boto3.session.Session(region_name=settings.aws_region)

_config = Config(
    s3={"addressing_style": "path"},  # evita issues de virtual-host no LocalStack
    retries={"max_attempts": 3, "mode": "standard"},
    connect_timeout=5,
    read_timeout=max(int(settings.upload_timeout_seconds), 10),
)

s3 = _session.client("s3", endpoint_url=settings.aws_endpoint_url, config=_config)
ddb = _session.resource("dynamodb", endpoint_url=settings.aws_endpoint_url, config=_config)

table_videos = ddb.Table(settings.ddb_table)
table_users = ddb.Table(settings.ddb_users_table)
