#!/usr/bin/env python3
"""
CDK entry point.

    cdk deploy -c account=123456789012 -c region=eu-central-1 \
        -c domain=toot.camp -c smtp_from_address=notifications@toot.camp
"""
import logging

import aws_cdk as cdk

from tootcamp.config import StackConfig
from tootcamp.mastodon_stack import assemble

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

app = cdk.App()

config = StackConfig.from_context(app.node)
assemble(app, config, construct_id="Tootcamp")

app.synth()
