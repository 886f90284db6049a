"""
Metadata API (GraphQL) queries.

Every query is a cursor-paginated connection taking ``$first`` and ``$after``.
"""

PROJECTS_QUERY = """
query getProjects($first: Int!, $after: String) {
    projectsConnection(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
            id
            luid
            name
            description
            parentProject { id luid name }
            owner { id name username }
        }
    }
}
"""

WORKBOOKS_QUERY = """
query getWorkbooks($first: Int!, $after: String) {
    workbooksConnection(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
            id
            luid
            name
            description
            createdAt
            updatedAt
            uri
            projectName
            projectLuid
            owner { id name username }
        }
    }
}
"""

SHEETS_QUERY = """
query getSheets($first: Int!, $after: String) {
    sheetsConnection(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
            id
            name
            luid
            workbook { id luid name }
        }
    }
}
"""

SHEET_FIELDS_QUERY = """
query getSheetFieldInstances($first: Int!, $after: String) {
    sheetsConnection(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
            id
            name
            workbook { id luid name }
            sheetFieldInstances {
                id
                name
                role
                datasource { id name }
            }
            upstreamFields {
                id
                name
                __typename
                datasource { id name }
                upstreamColumns {
                    id
                    name
                    table { id name fullName }
                }
                ... on ColumnField { dataType }
                ... on CalculatedField { dataType formula }
            }
        }
    }
}
"""

PUBLISHED_DATASOURCES_QUERY = """
query getPublishedDatasources($first: Int!, $after: String) {
    publishedDatasourcesConnection(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
            id
            luid
            name
            description
            isCertified
            owner { id name username }
            upstreamTables {
                id
                name
                fullName
                schema
                connectionType
                database { id name connectionType hostName }
            }
        }
    }
}
"""

EMBEDDED_DATASOURCES_QUERY = """
query getEmbeddedDatasources($first: Int!, $after: String) {
    embeddedDatasourcesConnection(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
            id
            name
            workbook { id luid name }
            upstreamDatasources { id luid name }
            upstreamTables {
                id
                name
                fullName
                schema
                connectionType
                database { id name connectionType hostName }
            }
        }
    }
}
"""

CUSTOM_SQL_TABLES_QUERY = """
query getCustomSQLTables($first: Int!, $after: String) {
    customSQLTablesConnection(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        nodes {
            id
            name
            query
            connectionType
            database { id name connectionType hostName }
        }
    }
}
"""
