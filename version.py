"""Project version constants.

These constants are used in logs and in the botocore user agent so CloudTrail
entries can be traced back to a specific plugin version.
"""

ENGINE_NAME: str = "alb-percentiles"
ENGINE_VERSION: str = "0.1.0"
