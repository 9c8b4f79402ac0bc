"""
Security query catalog — predefined, read-only Cypher queries over the
Cartography graph.

Every exposure predicate is evaluated by Cypher itself.  Relationships to
security groups, ACLs and policies are traversed with OPTIONAL MATCH and
aggregated before filtering, so a resource without those attachments is still
evaluated (on its own properties) instead of silently disappearing.  None of
these queries interpolate caller input.
"""

from __future__ import annotations

from cloudgraph.client import GraphClient, QueryResult


# ---------------------------------------------------------------------------
# EC2
# ---------------------------------------------------------------------------

_EC2_OPEN_INGRESS = """\
MATCH (ec2:EC2Instance)
OPTIONAL MATCH (ec2)-[:IN_REGION]->(region:Region)
OPTIONAL MATCH (ec2)-[:MEMBER_OF_EC2_SECURITY_GROUP]->(:EC2SecurityGroup)
               -[:HAS_INGRESS_RULE]->(rule:EC2SecurityGroupIngressRule)
WITH ec2,
     head(collect(DISTINCT region.name)) AS region,
     any(r IN collect(rule) WHERE
         coalesce(r.cidr_blocks, '') CONTAINS '0.0.0.0/0' OR
         coalesce(r.ipv4_ranges, '') CONTAINS '0.0.0.0/0') AS openIngress
"""

_EC2_RETURN = """\
RETURN ec2.id AS id,
       coalesce(region, 'unknown') AS region,
       ec2.public_ip_address AS publicIp,
       ec2.instance_type AS instanceType,
       ec2.state AS state,
       ec2.public_ip_address IS NOT NULL AS isPublic,
       openIngress
ORDER BY ec2.id
"""

LIST_EC2_INSTANCES = _EC2_OPEN_INGRESS + _EC2_RETURN

FIND_PUBLIC_EC2_INSTANCES = (
    _EC2_OPEN_INGRESS
    + "WHERE ec2.public_ip_address IS NOT NULL OR openIngress\n"
    + _EC2_RETURN
)


def list_ec2_instances(client: GraphClient) -> QueryResult:
    """List all EC2 instances in the graph."""
    return client.execute_query(LIST_EC2_INSTANCES, "All EC2 instances discovered in AWS")


def find_public_ec2_instances(client: GraphClient) -> QueryResult:
    """EC2 instances with a public IP or a security group open to 0.0.0.0/0."""
    return client.execute_query(
        FIND_PUBLIC_EC2_INSTANCES,
        "EC2 instances exposed to the public internet",
        "HIGH",
    )


# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------

_S3_EXPOSURE = """\
MATCH (bucket:S3Bucket)
OPTIONAL MATCH (bucket)-[:IN_REGION]->(region:Region)
OPTIONAL MATCH (bucket)-[:HAS_BUCKET_POLICY]->(policy:BucketPolicy)
OPTIONAL MATCH (bucket)-[:HAS_BUCKET_ACL]->(acl:AccessControlList)
WITH bucket,
     head(collect(DISTINCT region.name)) AS region,
     any(a IN collect(acl) WHERE a.grantee IN ['AllUsers', 'AuthenticatedUsers']) AS publicAcl,
     any(p IN collect(policy) WHERE
         replace(coalesce(p.policy_document, ''), ' ', '') CONTAINS '"Effect":"Allow"' AND (
           replace(p.policy_document, ' ', '') CONTAINS '"Principal":"*"' OR
           replace(p.policy_document, ' ', '') CONTAINS '"Principal":{"AWS":"*"}' OR
           replace(p.policy_document, ' ', '') CONTAINS '"Principal":{"AWS":["*"]}'
         )) AS publicPolicy
WITH bucket, region, publicAcl, publicPolicy,
     publicAcl OR publicPolicy
       OR bucket.public_access_blocked = false
       OR bucket.public_access_blocked IS NULL AS isPublic
"""

_S3_RETURN = """\
RETURN bucket.name AS name,
       coalesce(region, 'unknown') AS region,
       bucket.creation_date AS creationDate,
       bucket.versioning_status AS versioningStatus,
       isPublic
ORDER BY bucket.name
"""

LIST_S3_BUCKETS = _S3_EXPOSURE + _S3_RETURN

FIND_PUBLIC_S3_BUCKETS = _S3_EXPOSURE + "WHERE isPublic\n" + _S3_RETURN


def list_s3_buckets(client: GraphClient) -> QueryResult:
    """List all S3 buckets."""
    return client.execute_query(LIST_S3_BUCKETS, "All S3 buckets in the account")


def find_public_s3_buckets(client: GraphClient) -> QueryResult:
    """Buckets with a public ACL grant, a public policy, or no public access block."""
    return client.execute_query(
        FIND_PUBLIC_S3_BUCKETS,
        "Publicly accessible S3 buckets",
        "CRITICAL",
    )


# ---------------------------------------------------------------------------
# IAM
# ---------------------------------------------------------------------------

_IAM_POLICIES = """\
MATCH (role:IAMRole)
OPTIONAL MATCH (role)-[:ASSUMES_ROLE_POLICY]->(policy:IAMPolicy)
OPTIONAL MATCH (role)-[:HAS_INLINE_POLICY]->(inline:IAMInlinePolicy)
OPTIONAL MATCH (role)-[:ATTACHES_MANAGED_POLICY]->(managed:IAMManagedPolicy)
WITH role,
     [d IN collect(DISTINCT policy.policy_document)
           + collect(DISTINCT inline.policy_document)
           + collect(DISTINCT managed.policy_document)
      WHERE d IS NOT NULL | replace(d, ' ', '')] AS documents
WITH role,
     any(d IN documents WHERE d CONTAINS '"Action":"*"' OR d CONTAINS '"Action":["*"') AS wildcardAction,
     any(d IN documents WHERE d CONTAINS '"Resource":"*"' OR d CONTAINS '"Resource":["*"'
                           OR d CONTAINS '"NotResource":"*"') AS wildcardResource,
     any(d IN documents WHERE d CONTAINS 'iam:*') AS iamFullAccess,
     any(d IN documents WHERE d CONTAINS '"Effect":"Allow"' AND d CONTAINS 'AdministratorAccess') AS adminAccess
WITH role,
     [pattern IN [
        CASE WHEN wildcardAction THEN 'Wildcard Actions' END,
        CASE WHEN wildcardResource THEN 'Wildcard Resources' END,
        CASE WHEN iamFullAccess THEN 'IAM Full Access' END,
        CASE WHEN adminAccess THEN 'Administrator Access' END
      ] WHERE pattern IS NOT NULL] AS riskyPolicies
"""

_IAM_RETURN = """\
RETURN role.name AS name,
       role.arn AS arn,
       role.create_date AS createDate,
       role.max_session_duration AS maxSessionDuration,
       size(riskyPolicies) > 0 AS isOverprivileged,
       riskyPolicies
ORDER BY role.name
"""

LIST_IAM_ROLES = _IAM_POLICIES + _IAM_RETURN

FIND_OVERPRIVILEGED_IAM_ROLES = _IAM_POLICIES + "WHERE size(riskyPolicies) > 0\n" + _IAM_RETURN


def list_iam_roles(client: GraphClient) -> QueryResult:
    """Enumerate IAM roles."""
    return client.execute_query(LIST_IAM_ROLES, "IAM roles detected in the environment")


def find_overprivileged_iam_roles(client: GraphClient) -> QueryResult:
    """Roles whose policy documents use wildcard actions/resources or admin access."""
    return client.execute_query(
        FIND_OVERPRIVILEGED_IAM_ROLES,
        "IAM roles with overly permissive policies",
        "HIGH",
    )


# ---------------------------------------------------------------------------
# Cross-service exposure
# ---------------------------------------------------------------------------

FIND_INTERNET_EXPOSED_RESOURCES = "CALL {\n" + _EC2_OPEN_INGRESS + """\
  WHERE ec2.public_ip_address IS NOT NULL OR openIngress
  RETURN ec2.id AS id, 'EC2Instance' AS type, coalesce(region, 'unknown') AS region,
         CASE WHEN ec2.public_ip_address IS NOT NULL THEN 'Public IP'
              ELSE 'Open Security Group' END AS exposureType,
         'HIGH' AS riskLevel

  UNION ALL

""" + _S3_EXPOSURE + """\
  WHERE isPublic
  RETURN bucket.name AS id, 'S3Bucket' AS type, coalesce(region, 'unknown') AS region,
         CASE WHEN publicAcl OR publicPolicy THEN 'Public Bucket Policy/ACL'
              ELSE 'Public Access Block Disabled' END AS exposureType,
         'CRITICAL' AS riskLevel

  UNION ALL

  MATCH (lb:LoadBalancer)
  WHERE lb.scheme = 'internet-facing'
  OPTIONAL MATCH (lb)-[:IN_REGION]->(region:Region)
  WITH lb, head(collect(DISTINCT region.name)) AS region
  RETURN lb.arn AS id, 'LoadBalancer' AS type, coalesce(region, 'unknown') AS region,
         'Internet-facing Load Balancer' AS exposureType,
         'HIGH' AS riskLevel

  UNION ALL

  MATCH (rds:RDSInstance)
  OPTIONAL MATCH (rds)-[:IN_REGION]->(region:Region)
  OPTIONAL MATCH (rds)-[:MEMBER_OF_DB_SECURITY_GROUP]->(:DBSecurityGroup)
                 -[:HAS_INGRESS_RULE]->(rule:DBSecurityGroupIngressRule)
  WITH rds,
       head(collect(DISTINCT region.name)) AS region,
       any(r IN collect(rule) WHERE coalesce(r.cidr_blocks, '') CONTAINS '0.0.0.0/0') AS openIngress
  WHERE rds.publicly_accessible = true OR openIngress
  RETURN rds.db_instance_arn AS id, 'RDSInstance' AS type, coalesce(region, 'unknown') AS region,
         CASE WHEN rds.publicly_accessible = true THEN 'Public RDS Instance'
              ELSE 'Open Security Group' END AS exposureType,
         'CRITICAL' AS riskLevel
}
RETURN id, type, region, exposureType, riskLevel
ORDER BY CASE riskLevel WHEN 'CRITICAL' THEN 0 WHEN 'HIGH' THEN 1
                        WHEN 'MEDIUM' THEN 2 ELSE 3 END, type, id
"""


def find_internet_exposed_resources(client: GraphClient) -> QueryResult:
    """Cross-service exposure: EC2, S3, load balancers and RDS."""
    return client.execute_query(
        FIND_INTERNET_EXPOSED_RESOURCES,
        "Resources exposed to the internet",
        "HIGH",
    )
