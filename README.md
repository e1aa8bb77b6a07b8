# bfeapi

`bfeapi` is the domain model for a BFE control plane. It covers products, BFE
clusters, instance pools, sub clusters, clusters, route rules, domains and TLS
certificates, and it includes the permission model. It also builds the
versioned configuration that BFE data-plane nodes load: the route table, the
host table, the cluster config, the cluster table, the GSLB weights and the
server certificate config.

## Installation

```
pip install bfeapi
```

To install the test dependencies:

```
pip install "bfeapi[test]"
```

## What the package does not do

`bfeapi` is a library only. It has no HTTP server, no command-line program and
no database layer. Each manager needs a *storager* object, which is an
implementation of an abstract class such as `ProductStorager`, `PoolStorager`
or `ClusterStorager`. It also needs a `bfeapi.txn.TxnStorager`, whose
`atom_execute(do)` runs a unit of work atomically. You supply both, backed by
your own database or by in-memory fakes. Users, tokens and visitor
authentication are not part of the package. Permission checks work directly on
scope names.

`bfeapi.txn` contains helpers for DB-API connections:

- `transaction(conn, do)`
- `rdb_txn_execute(dc, handler)`, used with a `DBContext`
- `duplicate_entry_error(err)`

## Errors

Business errors are `bfeapi.xerror.ApiError` exceptions. Each one carries a
kind, such as parameter, model, DAO, record not found or record existed. The
`wrap_*` functions build these errors, and the managers raise them. `resolve()`
maps an error to a `ResolveResult` that holds an HTTP-like error number, a type
and a message:

```python
from bfeapi import xerror

err = xerror.wrap_record_not_exist("Pool")
result = xerror.resolve(err)
print(result.err_no, result.type, result.msg)   # 404 Record Not Exist Pool Record Not Exist
```

`cause(err)` returns the innermost error. `ResolveResult.full_msg()` lists that
error followed by every wrapping layer.

## Managers

Each manager runs its work through the transaction storager you give it:

```python
from bfeapi.basic import ProductManager, ProductParam

manager = ProductManager(txn, product_storager)
manager.create_product(ProductParam(name="shop"))
products = manager.fetch_products(None)
```

- `bfeapi.basic`: `ProductManager`, `BFEClusterManager` and `ExtraFileManager`. The build-in product, with id 1, cannot be deleted or updated. `product_context()` and `current_product()` keep track of the current product.
- `bfeapi.pool.PoolManager`: instance pools. `pool_real_name()` adds the product name to a pool name as a prefix. A pool that a BFE cluster or a sub cluster refers to cannot be deleted.
- `bfeapi.sub_cluster.SubClusterManager`: a mounted sub cluster cannot be deleted.
- `bfeapi.cluster.ClusterManager`: checks the load-balance matrix. Each row must sum to 100 and cover every BFE cluster and sub cluster. It also checks sub cluster binding. If you give no scheduler, it builds a default one.
- `bfeapi.route_rule.RouteRuleManager`: the last advanced rule must be `default_t()`, and every cluster a rule refers to must exist and be ready.
- `bfeapi.domain.DomainManager`: refuses a domain that clashes with a wildcard domain. A domain that a route rule or an HTTPS setting still uses cannot be deleted.
- `bfeapi.certificate.CertificateManager`: `validate_cert_pair()` checks that the certificate and key are PEM data and that they form a pair. The manager keeps exactly one default certificate.

## Exporting data-plane configuration

`bfeapi.version_control.VersionControlManager.export_config()` works in four
steps:

1. It generates a configuration.
2. It signs the configuration at the zero version, using the MD5 of its JSON form.
3. It asks the `VersionControlStorager` for the version stored under that signature.
4. It stamps the configuration with that version.

The exporters below return `None` when the caller already holds the current
version:

- `CertificateManager.export_server_cert(last_version)`
- `bfeapi.cluster_export.ClusterExporter`: `export_cluster_table(last_version)` and `export_gslb(last_version, bfe_cluster_name)`
- `bfeapi.route_export.RouteRuleExporter`: `export_route_rule(last_version)`

To build the configuration data without version control, call the underlying
builders directly:

- `build_server_cert_conf`
- `build_cluster_table_conf`
- `build_gslb_conf`
- `new_route_table_file`
- `new_host_table_conf`
- `new_bfe_cluster_conf`

## Permissions

```python
from bfeapi.features import Action, Feature, new_feature_authorization, is_feature_granted

auth = new_feature_authorization(Feature.ROUTE, Action.UPDATE)
is_feature_granted(["Product"], auth)   # True
```

`scope_permissions(scope)` returns the actions that the `System`, `Product` or
`Support` scope allows for each feature.

## Localised error messages

`bfeapi.i18n.Translator` is built from `I18nConfig` language packs. Each
mapping is a regular expression, and its translation may contain `%s`
placeholders that are filled from the capture groups.
`try_mapping_err_msg(accept_language, err_msg)` translates a message of the
form `"{type}: {msg}"`. It uses the first language in the `Accept-Language`
value that has a pack.

```python
from bfeapi.i18n import I18nConfig, Translator

translator = Translator([
    I18nConfig(lang="zh", mapping={"Record Not Exist": "记录不存在", "(.*) Not Ready": "%s 未就绪"}),
])
translator.try_mapping_err_msg("zh,en;q=0.9", "Record Not Exist: web Not Ready")
# '记录不存在: web 未就绪'
```