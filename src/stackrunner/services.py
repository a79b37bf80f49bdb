from enum import Enum


class Service(str, Enum):
    """
    Emulated cloud services with a known endpoint accessor.

    Values are the names used in the emulator's port table
    (`DEFAULT_PORT_<VALUE upper-cased>`).
    """

    S3 = "s3"
    KINESIS = "kinesis"
    LAMBDA = "lambda"
    DYNAMODB = "dynamodb"
    DYNAMODB_STREAMS = "dynamodbstreams"
    API_GATEWAY = "apigateway"
    ELASTICSEARCH = "elasticsearch"
    FIREHOSE = "firehose"
    SNS = "sns"
    SQS = "sqs"
    REDSHIFT = "redshift"
