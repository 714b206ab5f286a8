"""EventBridge schedule that triggers the hourly sync."""
import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class ScheduleManager:
    """
    Arms and disarms the periodic sync trigger.

    The EventBridge rule is the schedule state: the schedule is armed when
    the rule exists and is enabled. Both operations are idempotent.
    """

    TARGET_ID = 'eventbrite-sync'

    def __init__(
        self,
        rule_name: str,
        target_arn: Optional[str] = None,
        schedule_expression: str = 'rate(1 hour)'
    ):
        """
        Initialize EventBridge client.

        Args:
            rule_name: Name of the schedule rule
            target_arn: ARN of the function invoked by the rule
            schedule_expression: EventBridge schedule expression
        """
        self.rule_name = rule_name
        self.target_arn = target_arn
        self.schedule_expression = schedule_expression
        self.events = boto3.client('events')

    def is_enabled(self) -> bool:
        """Return True if the schedule rule exists and is enabled."""
        rule = self._describe_rule()
        return rule is not None and rule.get('State') == 'ENABLED'

    def _describe_rule(self) -> Optional[dict]:
        try:
            return self.events.describe_rule(Name=self.rule_name)
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceNotFoundException':
                return None
            raise

    def enable(self) -> bool:
        """
        Arm the schedule.

        Returns:
            True if the schedule was armed by this call, False if it already was
        """
        if self.is_enabled():
            logger.info(f"Schedule {self.rule_name} already enabled")
            return False

        self.events.put_rule(
            Name=self.rule_name,
            ScheduleExpression=self.schedule_expression,
            State='ENABLED',
            Description='Periodic Eventbrite events sync'
        )
        if self.target_arn:
            self.events.put_targets(
                Rule=self.rule_name,
                Targets=[{
                    'Id': self.TARGET_ID,
                    'Arn': self.target_arn,
                    'Input': json.dumps({'action': 'sync', 'trigger': 'scheduled'})
                }]
            )
        logger.info(
            f"Enabled schedule {self.rule_name} ({self.schedule_expression})"
        )
        return True

    def disable(self) -> bool:
        """
        Disarm the schedule by removing the rule and its targets.

        Returns:
            True if a rule was removed, False if none existed
        """
        if self._describe_rule() is None:
            logger.info(f"Schedule {self.rule_name} already disabled")
            return False

        targets = self.events.list_targets_by_rule(Rule=self.rule_name)
        target_ids = [target['Id'] for target in targets.get('Targets', [])]
        if target_ids:
            self.events.remove_targets(Rule=self.rule_name, Ids=target_ids)
        self.events.delete_rule(Name=self.rule_name)
        logger.info(f"Disabled schedule {self.rule_name}")
        return True
