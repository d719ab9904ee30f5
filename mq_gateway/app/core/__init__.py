SERVICE_NAME = "mq-gateway"
