"""CloudFormation template parsing."""
