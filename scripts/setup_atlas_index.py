#!/usr/bin/env python3
"""
Script to check the MongoDB Atlas Search index used by product search,
and print its definition for manual setup when it is missing.
"""

import os
import json
import argparse
import sys
from pymongo import MongoClient
from pymongo.errors import PyMongoError
from dotenv import load_dotenv

from storefront_search.database.mongodb import (
    DEFAULT_MONGODB_URI, PRODUCTS, database_name_from_uri, product_search_index_definition
)

# Load environment variables from .env file
load_dotenv()

DEFAULT_INDEX_NAME = os.getenv("SEARCH_INDEX_NAME", "product_search")


def check_atlas_connection(mongodb_uri):
    """Check connection to MongoDB Atlas"""
    try:
        client = MongoClient(mongodb_uri)
        client.admin.command('ping')
        print("Successfully connected to MongoDB")
        return client
    except PyMongoError as e:
        print(f"Error connecting to MongoDB: {str(e)}")
        return None


def check_index_exists(collection, index_name):
    """Check if the Atlas Search index exists and report its status"""
    try:
        for index in collection.list_search_indexes(index_name):
            print(f"Index '{index_name}' exists (status: {index.get('status', 'unknown')})")
            return True
        print(f"Index '{index_name}' does not exist on collection '{collection.name}'")
        return False
    except PyMongoError as e:
        print(f"Error checking search indexes: {str(e)}")
        return False


def check_collection_status(collection):
    """Count products and products missing the searchable text projection"""
    try:
        doc_count = collection.count_documents({})
        print(f"Collection '{collection.name}' has {doc_count} documents")
        missing = collection.count_documents({"searchText": {"$in": [None, ""]}})
        if missing:
            print(f"  - {missing} documents have no searchText and will never match a text query")
        return True
    except PyMongoError as e:
        print(f"Error checking collection: {str(e)}")
        return False


def display_setup_instructions(index_name):
    """Display instructions for manual setup in Atlas"""
    print("\n==== Atlas Search Setup Instructions ====")
    print("\nCreate a search index on the products collection with this JSON definition:")
    print("\n```json")
    print(json.dumps(product_search_index_definition(), indent=2))
    print("```\n")
    print(f"Name the index '{index_name}'. Index creation may take a few minutes to complete.")


def main():
    parser = argparse.ArgumentParser(description="Validate the Atlas Search index for product search")
    parser.add_argument("--uri", default=os.getenv("MONGODB_URI", DEFAULT_MONGODB_URI), help="MongoDB URI connection string")
    parser.add_argument("--index", default=DEFAULT_INDEX_NAME, help="Search index name")
    parser.add_argument("--instructions", action="store_true", help="Display setup instructions only")

    args = parser.parse_args()

    if args.instructions:
        display_setup_instructions(args.index)
        return

    client = check_atlas_connection(args.uri)
    if not client:
        print("Failed to connect to MongoDB. Please check your connection string.")
        sys.exit(1)

    collection = client[database_name_from_uri(args.uri)][PRODUCTS]
    check_collection_status(collection)

    if not check_index_exists(collection, args.index):
        display_setup_instructions(args.index)

    client.close()


if __name__ == "__main__":
    main()
